from flask import request

from src.shared.standardization import APIBlueprint, APIRoute
from src.shared.decorators import get_teacher_id
from src.shared.limiter import limiter
from .services import FeedbackService

feedback_bp = APIBlueprint('feedback', __name__)


@feedback_bp.route('/generate', methods=['POST'])
@limiter.limit("5 per minute")
@APIRoute.standard(
    teacher_required_flag=True,
    required_fields=['class_id', 'post_quiz_id'],
    schema={
        'class_id': {'type': 'string', 'required': True},
        'post_quiz_id': {'type': 'string', 'required': True},
        'only': {'type': 'list'}
    }
)
def generate_feedback():
    """
    Genera la retroalimentación de la evaluación final para estudiantes,
    profesor (individual y grupal) y familias.

    La respuesta informa las unidades fallidas; enviarlas en 'only' reintenta solo esas.
    """
    data = request.get_json()
    result = FeedbackService().generate_feedback(
        get_teacher_id(),
        data['class_id'],
        data['post_quiz_id'],
        data.get('only')
    )
    if result["generated_count"] == 0:
        message = "No se pudo generar ninguna retroalimentación"
    elif result["failed_count"]:
        message = "Retroalimentación generada parcialmente"
    else:
        message = "Retroalimentación generada exitosamente"
    return APIRoute.success(data=result, message=message)


@feedback_bp.route('/<class_id>', methods=['GET'])
@APIRoute.standard(teacher_required_flag=True)
def list_feedback(class_id):
    result = FeedbackService().list_feedback(
        get_teacher_id(),
        class_id,
        request.args.get('audience'),
        request.args.get('student_id')
    )
    return APIRoute.success(data=result)
