from flask import request

from src.shared.standardization import APIBlueprint, APIRoute
from src.shared.decorators import get_teacher_id
from .services import ClassService

classes_bp = APIBlueprint('classes', __name__)


@classes_bp.route('/', methods=['POST'])
@APIRoute.standard(
    teacher_required_flag=True,
    required_fields=['group_id'],
    schema={
        'group_id': {'type': 'string', 'required': True},
        'topic_id': {'type': 'string'},
        'free_topic': {'type': 'string'},
        'subject_id': {'type': 'string'},
        'scheduled_date': {'type': 'string'},
        'duration_minutes': {'type': 'integer'},
        'age_group': {'type': 'string'},
        'method_tags': {'type': 'list'},
        'context': {'type': 'string'},
        'cross_cutting_areas': {'type': 'list'}
    }
)
def create_class():
    """
    Crea una clase con el contexto del paso 1.
    Requiere topic_id (tema del currículo) o free_topic (tema extraordinario).
    """
    result = ClassService().create_class(get_teacher_id(), request.get_json())
    return APIRoute.success(data=result, message="Clase creada exitosamente", status_code=201)


@classes_bp.route('/<class_id>', methods=['GET'])
@APIRoute.standard(teacher_required_flag=True)
def get_class(class_id):
    return APIRoute.success(data=ClassService().get_class(get_teacher_id(), class_id))


@classes_bp.route('/<class_id>/validate', methods=['POST'])
@APIRoute.standard(teacher_required_flag=True)
def validate_class(class_id):
    """Verifica que la clase tenga contexto, guía final y ambas evaluaciones"""
    result = ClassService().validate_class(get_teacher_id(), class_id)
    message = "Clase preparada" if result["ready"] else "La clase aún no está lista"
    return APIRoute.success(data=result, message=message)


@classes_bp.route('/<class_id>/complete', methods=['POST'])
@APIRoute.standard(teacher_required_flag=True)
def complete_class(class_id):
    data = request.get_json(silent=True) or {}
    result = ClassService().complete_class(get_teacher_id(), class_id, data.get('observations'))
    return APIRoute.success(data=result, message="Clase completada")
