from functools import wraps
from flask import request, jsonify, current_app
from flask_jwt_extended import verify_jwt_in_request, get_jwt_identity
from bson.objectid import ObjectId
from src.shared.database import get_db
from src.shared.exceptions import AppException
from src.shared.utils import ensure_json_serializable
import logging

def handle_errors(f):
    """Decorador para manejar excepciones en las rutas"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except AppException as e:
            response = {
                "success": False,
                "error": e.__class__.__name__,
                "message": str(e.message)
            }
            if e.details:
                response["details"] = ensure_json_serializable(e.details)
            return jsonify(response), e.code
        except Exception as e:
            current_app.logger.exception(f"Error inesperado: {str(e)}")
            return jsonify({
                "success": False,
                "error": "ERROR_SERVIDOR",
                "message": "Error interno del servidor"
            }), 500
    return decorated_function

def auth_required(f):
    """Decorador para requerir autenticación mediante JWT"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        logger = logging.getLogger(__name__)

        try:
            verify_jwt_in_request()
            user_id = get_jwt_identity()

            db = get_db()
            user = db.users.find_one({"_id": ObjectId(user_id)})
        except Exception as e:
            logger.error(f"Auth_required: Error de autenticación: {str(e)}")
            return jsonify({
                "success": False,
                "error": "ERROR_AUTENTICACION",
                "message": "Error de autenticación"
            }), 401

        if not user:
            logger.warning(f"Auth_required: Usuario con ID {user_id} no encontrado en la base de datos")
            return jsonify({
                "success": False,
                "error": "ERROR_AUTENTICACION",
                "message": "Usuario no encontrado"
            }), 401

        request.user_id = user_id
        request.user_roles = [user["role"]] if user.get("role") else []
        logger.debug(f"Auth_required: Usuario autenticado con ID: {user_id}")

        return f(*args, **kwargs)
    return decorated_function

def resolve_teacher(user_id):
    """
    Obtiene el registro de profesor activo asociado a un usuario.

    Returns:
        El documento del profesor o None si el usuario no es profesor
    """
    if not user_id or not ObjectId.is_valid(str(user_id)):
        return None
    db = get_db()
    return db.teachers.find_one({
        "user_id": ObjectId(str(user_id)),
        "active": {"$ne": False}
    })

def teacher_required(f):
    """
    Decorador que resuelve el profesor del usuario autenticado.
    Debe usarse después de auth_required. Deja el ID en request.teacher_id.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not hasattr(request, 'user_id'):
            return jsonify({
                "success": False,
                "error": "ERROR_AUTENTICACION",
                "message": "Se requiere autenticación"
            }), 401

        teacher = resolve_teacher(request.user_id)
        if not teacher:
            logging.getLogger(__name__).warning(
                f"Teacher_required: el usuario {request.user_id} no tiene perfil de profesor"
            )
            return jsonify({
                "success": False,
                "error": "ERROR_PERMISO",
                "message": "El usuario no tiene un perfil de profesor activo"
            }), 403

        request.teacher_id = str(teacher["_id"])
        return f(*args, **kwargs)
    return decorated_function

def validate_json(required_fields=None, schema=None):
    """Decorador para validar JSON en las solicitudes"""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not request.is_json:
                return jsonify({
                    "success": False,
                    "error": "ERROR_FORMATO",
                    "message": "Se esperaba contenido JSON"
                }), 400

            data = request.get_json(silent=True)
            if not isinstance(data, dict):
                return jsonify({
                    "success": False,
                    "error": "ERROR_FORMATO",
                    "message": "El cuerpo debe ser un objeto JSON"
                }), 400

            if required_fields:
                missing_fields = [field for field in required_fields if field not in data]
                if missing_fields:
                    return jsonify({
                        "success": False,
                        "error": "CAMPOS_FALTANTES",
                        "message": f"Faltan campos requeridos: {', '.join(missing_fields)}"
                    }), 400

            if schema:
                from src.shared.validators import validate_schema
                is_valid, errors = validate_schema(data, schema)
                if not is_valid:
                    return jsonify({
                        "success": False,
                        "error": "DATOS_INVALIDOS",
                        "message": "Datos inválidos",
                        "details": errors
                    }), 400

            return f(*args, **kwargs)
        return decorated_function
    return decorator

def get_teacher_id():
    """Obtiene el ID del profesor resuelto por teacher_required"""
    return getattr(request, 'teacher_id', None)
