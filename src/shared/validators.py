"""
Funciones de validación para datos de la aplicación.

Este módulo contiene funciones para validar datos contra esquemas predefinidos,
validar IDs de MongoDB y realizar otras validaciones comunes.

Ejemplos de uso:
    # Validar datos contra un esquema
    schema = {
        'kind': {'type': 'string', 'required': True, 'enum': ['pre', 'post']},
        'recommendation_ids': {'type': 'list'}
    }
    is_valid, errors = validate_schema(data, schema)

    # Validar un ObjectId de MongoDB
    validate_object_id(class_id, "clase")
"""

from bson.objectid import ObjectId
from src.shared.exceptions import ValidationError
from src.shared.logging import log_warning

def is_valid_object_id(id_str: str) -> bool:
    """
    Valida si un string es un ObjectId válido de MongoDB.

    Args:
        id_str: String a validar

    Returns:
        bool: True si es un ObjectId válido, False en caso contrario
    """
    if id_str is None:
        return False
    if isinstance(id_str, ObjectId):
        return True
    return ObjectId.is_valid(id_str)

def validate_object_id(id_str: str, entity_name: str = "objeto") -> ObjectId:
    """
    Valida un ObjectId y lanza una excepción si no es válido.

    Args:
        id_str: String a validar
        entity_name: Nombre de la entidad para personalizar el mensaje de error

    Returns:
        ObjectId: El identificador convertido

    Raises:
        ValidationError: Si el ID no es un ObjectId válido
    """
    if not id_str:
        log_warning(f"ID no proporcionado para {entity_name}", "shared.validators")
        raise ValidationError(f"ID de {entity_name} no proporcionado")

    if not is_valid_object_id(id_str):
        log_warning(f"ID inválido: {id_str} para {entity_name}", "shared.validators")
        raise ValidationError(f"ID de {entity_name} inválido: {id_str}")

    return id_str if isinstance(id_str, ObjectId) else ObjectId(id_str)

_TYPE_CHECKS = {
    'string': lambda v: isinstance(v, str),
    'integer': lambda v: isinstance(v, int) and not isinstance(v, bool),
    'boolean': lambda v: isinstance(v, bool),
    'list': lambda v: isinstance(v, list),
    'dict': lambda v: isinstance(v, dict),
}

def validate_schema(data, schema):
    """
    Valida un objeto de datos contra un esquema

    Args:
        data (dict): Los datos a validar
        schema (dict): El esquema con las reglas de validación

    Returns:
        tuple: (is_valid, errors) donde is_valid es un booleano y errors es un dict con los errores
    """
    errors = {}

    for field, rules in schema.items():
        if field not in data or data[field] is None:
            if rules.get('required', False):
                errors[field] = "Campo requerido"
            continue

        value = data[field]
        expected_type = rules.get('type')
        if expected_type and not _TYPE_CHECKS[expected_type](value):
            errors[field] = f"Debe ser de tipo {expected_type}"
            continue

        if 'enum' in rules and value not in rules['enum']:
            errors[field] = f"Debe ser uno de: {', '.join(rules['enum'])}"
        elif expected_type == 'string' and len(value) < rules.get('minLength', 0):
            errors[field] = f"Debe tener al menos {rules['minLength']} caracteres"

    return len(errors) == 0, errors
