"""
Estandarización para la API del flujo de preparación de clases

Este módulo unifica todas las funcionalidades de estandarización para la API:
1. Estandarización de rutas (APIBlueprint, APIRoute)
2. Estandarización de servicios (BaseService, VerificationBaseService)
"""

from flask import jsonify, Blueprint
from src.shared.decorators import handle_errors, auth_required, teacher_required, validate_json
from src.shared.exceptions import NotFoundError
from src.shared.utils import ensure_json_serializable
from typing import List, Dict, Any, Optional, Tuple
from bson.objectid import ObjectId
from src.shared.database import get_db

#-------------------------------------------------------
# ESTANDARIZACIÓN DE RUTAS
#-------------------------------------------------------

class APIBlueprint(Blueprint):
    """
    Extensión de Flask Blueprint para definir rutas estandarizadas.
    """

    def __init__(self, name, import_name, **kwargs):
        super().__init__(name, import_name, **kwargs)


class APIRoute:
    """
    Clase de utilidad para estandarizar rutas y respuestas.

    Proporciona decoradores y métodos para crear respuestas estandarizadas.
    """

    @staticmethod
    def standard(auth_required_flag: bool = False,
                 teacher_required_flag: bool = False,
                 required_fields: List[str] = None,
                 schema: Dict = None):
        """
        Decorador compuesto que aplica los decoradores estándar de la aplicación.

        Args:
            auth_required_flag: Si es True, requiere autenticación JWT
            teacher_required_flag: Si es True, además resuelve el profesor del usuario
            required_fields: Lista de campos requeridos en el cuerpo JSON
            schema: Esquema de validación para el cuerpo JSON

        Returns:
            Función decoradora compuesta
        """
        decorators = [handle_errors]

        # La autenticación va antes que la validación del cuerpo
        if auth_required_flag or teacher_required_flag:
            decorators.append(auth_required)
            if teacher_required_flag:
                decorators.append(teacher_required)

        if required_fields or schema:
            decorators.append(validate_json(required_fields, schema))

        def decorator(f):
            for decorator in reversed(decorators):
                f = decorator(f)
            return f

        return decorator

    @staticmethod
    def success(data: Any = None, message: str = None, status_code: int = 200) -> tuple:
        """
        Crea una respuesta exitosa estandarizada.

        Args:
            data: Datos a incluir en la respuesta (opcional)
            message: Mensaje descriptivo (opcional)
            status_code: Código de estado HTTP (por defecto 200)

        Returns:
            Tupla (response, status_code) para retornar desde una ruta Flask
        """
        response = {"success": True}

        if data is not None:
            response["data"] = ensure_json_serializable(data)

        if message:
            response["message"] = message

        return jsonify(response), status_code

#-------------------------------------------------------
# ESTANDARIZACIÓN DE SERVICIOS
#-------------------------------------------------------

class BaseService:
    """
    Clase base para servicios con acceso a una colección de MongoDB.
    """

    def __init__(self, collection_name: str, db=None):
        """
        Inicializa un nuevo servicio base.

        Args:
            collection_name: Nombre de la colección de MongoDB que utilizará este servicio
            db: Base de datos a usar; por defecto la conexión compartida
        """
        self.db = db if db is not None else get_db()
        self.collection = self.db[collection_name]
        self.collection_name = collection_name

#-------------------------------------------------------
# SERVICIOS DE VERIFICACIÓN ESTANDARIZADOS
#-------------------------------------------------------

class VerificationBaseService(BaseService):
    """
    Clase base que resuelve la pertenencia de recursos al profesor.

    Un recurso ajeno y uno inexistente producen el mismo NotFoundError.
    """

    def get_owned_class(self, class_id: str, teacher_id: str) -> Dict:
        """
        Obtiene una clase perteneciente al profesor.

        Raises:
            NotFoundError: Si la clase no existe o pertenece a otro profesor
        """
        if not ObjectId.is_valid(str(class_id)) or not ObjectId.is_valid(str(teacher_id)):
            raise NotFoundError("Clase no encontrada")
        class_doc = self.db.classes.find_one({
            "_id": ObjectId(str(class_id)),
            "teacher_id": ObjectId(str(teacher_id))
        })
        if not class_doc:
            raise NotFoundError("Clase no encontrada")
        return class_doc

    def get_owned_quiz(self, quiz_id: str, teacher_id: str) -> Tuple[Dict, Dict]:
        """
        Obtiene una evaluación y su clase, verificando que la clase sea del profesor.

        Returns:
            Tupla (evaluación, clase)
        """
        if not ObjectId.is_valid(str(quiz_id)):
            raise NotFoundError("Evaluación no encontrada")
        quiz = self.db.quizzes.find_one({"_id": ObjectId(str(quiz_id))})
        if not quiz:
            raise NotFoundError("Evaluación no encontrada")
        try:
            class_doc = self.get_owned_class(quiz["class_id"], teacher_id)
        except NotFoundError:
            raise NotFoundError("Evaluación no encontrada")
        return quiz, class_doc

    def get_topic(self, class_doc: Dict) -> Dict:
        topic = self.db.topics.find_one({"_id": class_doc.get("topic_id")}) if class_doc.get("topic_id") else None
        return topic or {}

    def get_current_guide_version(self, class_doc: Dict) -> Optional[Dict]:
        """Versión de guía apuntada por la clase, solo si pertenece a esa misma clase"""
        version_id = class_doc.get("current_guide_version_id")
        if not version_id:
            return None
        return self.db.guide_versions.find_one({"_id": version_id, "class_id": class_doc["_id"]})
