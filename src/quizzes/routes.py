from flask import request

from src.shared.standardization import APIBlueprint, APIRoute
from src.shared.decorators import get_teacher_id
from src.shared.limiter import limiter
from .services import QuizService

quizzes_bp = APIBlueprint('quizzes', __name__)


@quizzes_bp.route('/generate', methods=['POST'])
@limiter.limit("20 per minute")
@APIRoute.standard(
    teacher_required_flag=True,
    required_fields=['class_id', 'kind'],
    schema={
        'class_id': {'type': 'string', 'required': True},
        'kind': {'type': 'string', 'required': True, 'enum': ['pre', 'post']}
    }
)
def generate_quiz():
    """
    Genera la evaluación diagnóstica (pre) o final (post) de una clase.

    La evaluación pre incluye una lectura y 3 preguntas; la post 10 preguntas.
    """
    data = request.get_json()
    result = QuizService().generate_quiz(get_teacher_id(), data['class_id'], data['kind'])
    return APIRoute.success(data=result, message="Evaluación generada exitosamente", status_code=201)


@quizzes_bp.route('/<quiz_id>', methods=['GET'])
@APIRoute.standard(teacher_required_flag=True)
def get_quiz(quiz_id):
    return APIRoute.success(data=QuizService().get_quiz(get_teacher_id(), quiz_id))


@quizzes_bp.route('/<quiz_id>/reading', methods=['PUT'])
@APIRoute.standard(
    teacher_required_flag=True,
    required_fields=['reading'],
    schema={'reading': {'type': 'string', 'required': True, 'minLength': 1}}
)
def edit_reading(quiz_id):
    data = request.get_json()
    result = QuizService().edit_reading(get_teacher_id(), quiz_id, data['reading'])
    return APIRoute.success(data=result, message="Lectura actualizada")


@quizzes_bp.route('/<quiz_id>/reading/refine', methods=['POST'])
@limiter.limit("20 per minute")
@APIRoute.standard(
    teacher_required_flag=True,
    required_fields=['intent'],
    schema={
        'intent': {'type': 'string', 'required': True, 'enum': ['regenerate', 'custom']},
        'current_text': {'type': 'string'},
        'instruction': {'type': 'string'}
    }
)
def refine_reading(quiz_id):
    """Reescribe la lectura con el servicio de generación (nueva versión o ajuste personalizado)"""
    data = request.get_json()
    result = QuizService().refine_reading(
        get_teacher_id(),
        quiz_id,
        data.get('current_text'),
        data['intent'],
        data.get('instruction')
    )
    return APIRoute.success(data=result, message="Lectura reescrita")


@quizzes_bp.route('/questions/<question_id>', methods=['PUT'])
@APIRoute.standard(teacher_required_flag=True)
def edit_question(question_id):
    data = request.get_json() or {}
    result = QuizService().edit_question(get_teacher_id(), question_id, data)
    return APIRoute.success(data=result, message="Pregunta actualizada")


@quizzes_bp.route('/regenerate', methods=['POST'])
@limiter.limit("20 per minute")
@APIRoute.standard(teacher_required_flag=True, required_fields=['quiz_id'])
def regenerate_all_questions():
    data = request.get_json()
    result = QuizService().regenerate_all_questions(get_teacher_id(), data['quiz_id'], data.get('class_id'))
    return APIRoute.success(data=result, message="Preguntas regeneradas")


@quizzes_bp.route('/modify-question', methods=['POST'])
@limiter.limit("30 per minute")
@APIRoute.standard(
    teacher_required_flag=True,
    required_fields=['quiz_id', 'question_id', 'action'],
    schema={
        'quiz_id': {'type': 'string', 'required': True},
        'question_id': {'type': 'string', 'required': True},
        'action': {'type': 'string', 'required': True, 'enum': ['swap', 'adjust_difficulty']},
        'difficulty': {'type': 'string', 'enum': ['easier', 'harder']}
    }
)
def modify_single_question():
    """Reemplaza una pregunta o ajusta su dificultad conservando su identificador"""
    data = request.get_json()
    result = QuizService().modify_single_question(
        get_teacher_id(),
        data['quiz_id'],
        data['question_id'],
        data['action'],
        data.get('difficulty')
    )
    return APIRoute.success(data=result, message="Pregunta modificada")


@quizzes_bp.route('/<quiz_id>/concepts', methods=['POST'])
@limiter.limit("20 per minute")
@APIRoute.standard(teacher_required_flag=True)
def identify_concepts(quiz_id):
    result = QuizService().identify_concepts(get_teacher_id(), quiz_id)
    return APIRoute.success(data=result, message="Conceptos identificados")


@quizzes_bp.route('/publish', methods=['POST'])
@APIRoute.standard(teacher_required_flag=True, required_fields=['quiz_id'])
def publish_quiz():
    data = request.get_json()
    result = QuizService().publish_quiz(get_teacher_id(), data['quiz_id'])
    return APIRoute.success(data=result, message="Evaluación publicada")
