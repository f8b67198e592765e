from flask import request

from src.shared.standardization import APIBlueprint, APIRoute
from src.shared.decorators import get_teacher_id
from src.shared.limiter import limiter
from .services import GuideService

guides_bp = APIBlueprint('guides', __name__)


@guides_bp.route('/generate', methods=['POST'])
@limiter.limit("20 per minute")
@APIRoute.standard(
    teacher_required_flag=True,
    required_fields=['class_id'],
    schema={
        'class_id': {'type': 'string', 'required': True},
        'method_tags': {'type': 'list'},
        'extra_context': {'type': 'string'}
    }
)
def generate_guide():
    """
    Genera una nueva versión de la guía de clase.
    La versión queda como actual y la clase pasa a edición de guía.
    """
    data = request.get_json()
    result = GuideService().generate_guide(
        get_teacher_id(),
        data['class_id'],
        data.get('method_tags') or [],
        data.get('extra_context', '')
    )
    return APIRoute.success(data=result, message="Guía generada exitosamente", status_code=201)


@guides_bp.route('/approve', methods=['POST'])
@APIRoute.standard(teacher_required_flag=True, required_fields=['class_id', 'version_id'])
def approve_guide():
    """Aprueba una versión de la guía y la deja como versión actual"""
    data = request.get_json()
    result = GuideService().approve_guide(get_teacher_id(), data['class_id'], data['version_id'])
    return APIRoute.success(data=result, message="Guía aprobada")


@guides_bp.route('/<class_id>/versions', methods=['GET'])
@APIRoute.standard(teacher_required_flag=True)
def list_versions(class_id):
    return APIRoute.success(data=GuideService().list_versions(get_teacher_id(), class_id))


@guides_bp.route('/<class_id>/versions/<version_id>', methods=['GET'])
@APIRoute.standard(teacher_required_flag=True)
def get_version(class_id, version_id):
    return APIRoute.success(data=GuideService().get_version(get_teacher_id(), class_id, version_id))
