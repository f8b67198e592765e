from flask import request

from src.shared.standardization import APIBlueprint, APIRoute
from src.shared.decorators import get_teacher_id
from src.shared.limiter import limiter
from .services import RemediationService

remediation_bp = APIBlueprint('remediation', __name__)


@remediation_bp.route('/process-pre-quiz', methods=['POST'])
@limiter.limit("10 per minute")
@APIRoute.standard(teacher_required_flag=True, required_fields=['class_id', 'quiz_id'])
def process_pre_quiz():
    """
    Analiza las respuestas completadas de la evaluación diagnóstica y
    registra recomendaciones para la guía.
    """
    data = request.get_json()
    result = RemediationService().process_pre_quiz_responses(get_teacher_id(), data['class_id'], data['quiz_id'])
    return APIRoute.success(data=result, message="Respuestas procesadas")


@remediation_bp.route('/apply', methods=['POST'])
@limiter.limit("20 per minute")
@APIRoute.standard(
    teacher_required_flag=True,
    required_fields=['class_id'],
    schema={
        'class_id': {'type': 'string', 'required': True},
        'recommendation_ids': {'type': 'list'},
        'manual_edits': {'type': 'dict'},
        'finalize': {'type': 'boolean'}
    }
)
def apply_recommendations():
    """Crea una nueva versión de la guía con las recomendaciones y ediciones indicadas"""
    data = request.get_json()
    result = RemediationService().apply_recommendations(
        get_teacher_id(),
        data['class_id'],
        data.get('recommendation_ids') or [],
        data.get('manual_edits'),
        bool(data.get('finalize', False))
    )
    message = "Guía final creada" if result["is_final"] else "Nueva versión de la guía creada"
    return APIRoute.success(data=result, message=message, status_code=201)


@remediation_bp.route('/<class_id>/recommendations', methods=['GET'])
@APIRoute.standard(teacher_required_flag=True)
def list_recommendations(class_id):
    applied = request.args.get('applied')
    if applied is not None:
        applied = applied.lower() == 'true'
    result = RemediationService().list_recommendations(get_teacher_id(), class_id, applied)
    return APIRoute.success(data=result)
