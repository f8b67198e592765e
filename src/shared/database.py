from pymongo import MongoClient, ASCENDING, DESCENDING
from typing import Optional
import dotenv
from datetime import datetime
import os
import logging
import threading

dotenv.load_dotenv()

logger = logging.getLogger(__name__)

def get_config_value(key, default=None):
    """
    Obtiene un valor de configuración desde las variables de entorno.

    Args:
        key (str): La clave de la variable de entorno
        default: Valor por defecto si no se encuentra la variable

    Returns:
        El valor de la variable de entorno o el valor por defecto
    """
    value = os.getenv(key, default)
    if value is None:
        logger.warning(f"Variable de entorno '{key}' no encontrada")
    return value

class DatabaseConnection:
    _instance: Optional[MongoClient] = None
    _db = None
    _indexes_setup_complete = False
    _indexes_setup_lock = threading.Lock()
    _failed_indexes = set()
    _successful_indexes = set()

    @classmethod
    def get_instance(cls) -> MongoClient:
        """Obtiene la instancia singleton del cliente MongoDB"""
        if cls._instance is None:
            mongo_uri = get_config_value('MONGO_DB_URI')
            if not mongo_uri:
                logger.error("No se encontró la variable MONGO_DB_URI en la configuración")
                raise ValueError("MONGO_DB_URI no está configurado")

            logger.info("Configurando conexión a MongoDB...")

            cls._instance = MongoClient(
                mongo_uri,
                maxPoolSize=50,
                minPoolSize=5,
                maxIdleTimeMS=30000,
                connectTimeoutMS=20000,
                serverSelectionTimeoutMS=20000,
                socketTimeoutMS=20000,
                waitQueueTimeoutMS=10000
            )

            try:
                cls._instance.admin.command('ping')
                logger.info("Conexión a MongoDB establecida exitosamente")
            except Exception as e:
                logger.error(f"Error conectando a MongoDB: {str(e)}")
                cls._instance = None
                raise

        return cls._instance

    @classmethod
    def get_db(cls):
        """Obtiene la instancia de la base de datos"""
        if cls._db is None:
            with cls._indexes_setup_lock:
                # Double-check inside lock
                if cls._db is None:
                    db_name = get_config_value('DB_NAME')
                    if not db_name:
                        logger.error("No se encontró la variable DB_NAME en la configuración")
                        raise ValueError("DB_NAME no está configurado")

                    cls._db = cls.get_instance()[db_name]
        return cls._db

def get_db():
    """Helper function para obtener la conexión a la BD"""
    return DatabaseConnection.get_db()

def _ensure_index(collection, keys, name=None, **kwargs):
    """Crea un índice si no existe uno equivalente, registrando el resultado"""
    try:
        start_time = datetime.utcnow()

        existing_indexes = collection.index_information()
        if name and name in existing_indexes:
            logger.debug(f"Índice '{name}' ya existe en {collection.name}")
            DatabaseConnection._successful_indexes.add(name)
            return name

        keys_tuple = tuple(keys)
        for existing_name, info in existing_indexes.items():
            if tuple(info.get('key', [])) == keys_tuple and info.get('unique', False) == kwargs.get('unique', False):
                logger.debug(
                    f"Índice '{existing_name}' en {collection.name} ya cubre las claves {keys_tuple}; no se recreará"
                )
                DatabaseConnection._successful_indexes.add(existing_name)
                return existing_name

        created_name = collection.create_index(keys, name=name, **kwargs)
        duration = (datetime.utcnow() - start_time).total_seconds()
        logger.info(f"Índice '{created_name}' creado en {collection.name} ({duration:.3f}s)")
        DatabaseConnection._successful_indexes.add(created_name)
        return created_name

    except Exception as e:
        logger.error(f"Error creando índice {name or keys} en {collection.name}: {str(e)}")
        DatabaseConnection._failed_indexes.add(name or str(keys))
        return None

def setup_database_indexes():
    """
    Configura los índices del flujo de preparación de clases.

    Los índices únicos de versiones de guía y de evaluaciones por clase son
    los que sostienen la numeración sin huecos y la unicidad (clase, tipo),
    por lo que un fallo al crearlos se reporta como configuración incompleta.

    Implementa un mecanismo de flag con thread safety para evitar que se ejecute múltiples veces.
    """
    with DatabaseConnection._indexes_setup_lock:
        if DatabaseConnection._indexes_setup_complete:
            logger.debug("Los índices ya han sido configurados. Saltando setup_database_indexes.")
            return True

        try:
            logger.info("Iniciando configuración de índices de base de datos...")
            db = get_db()

            # Profesores
            _ensure_index(db.teachers, [("user_id", ASCENDING)], name="idx_teachers_user", unique=True)

            # Clases
            _ensure_index(db.classes, [("teacher_id", ASCENDING)], name="idx_classes_teacher")
            _ensure_index(db.classes, [("teacher_id", ASCENDING), ("topic_id", ASCENDING),
                                       ("group_id", ASCENDING), ("session_number", DESCENDING)],
                          name="idx_classes_session")

            # Versiones de guía
            critical = [
                _ensure_index(db.guide_versions, [("class_id", ASCENDING), ("version_number", ASCENDING)],
                              name="idx_guide_versions_unique", unique=True),
                _ensure_index(db.quizzes, [("class_id", ASCENDING), ("kind", ASCENDING)],
                              name="idx_quizzes_class_kind_unique", unique=True),
            ]

            # Preguntas y respuestas
            _ensure_index(db.questions, [("quiz_id", ASCENDING), ("order", ASCENDING)], name="idx_questions_quiz_order")
            _ensure_index(db.student_responses, [("quiz_id", ASCENDING), ("state", ASCENDING)],
                          name="idx_student_responses_quiz_state")

            # Recomendaciones y retroalimentación
            _ensure_index(db.recommendations, [("class_id", ASCENDING), ("applied", ASCENDING)],
                          name="idx_recommendations_class_applied")
            _ensure_index(db.feedback, [("class_id", ASCENDING), ("audience", ASCENDING)],
                          name="idx_feedback_class_audience")
            _ensure_index(db.feedback, [("student_id", ASCENDING)], name="idx_feedback_student")

            if not all(critical):
                logger.error("No se pudieron crear los índices únicos del flujo de clases")
                return False

            DatabaseConnection._indexes_setup_complete = True
            logger.info("Configuración de índices de base de datos completada exitosamente")
            return True

        except Exception as e:
            logger.error(f"Error durante la configuración de índices: {str(e)}")
            return False

def reset_index_setup_tracking():
    """
    Resetea el estado de seguimiento de configuración de índices.

    Útil para forzar recreación de índices en desarrollo y pruebas.
    """
    with DatabaseConnection._indexes_setup_lock:
        DatabaseConnection._indexes_setup_complete = False
        DatabaseConnection._failed_indexes.clear()
        DatabaseConnection._successful_indexes.clear()
        logger.info("Estado de seguimiento de configuración de índices reseteado.")

def get_index_setup_status():
    """
    Obtiene el estado actual de la configuración de índices.

    Returns:
        dict: Diccionario con información del estado de los índices
    """
    return {
        "setup_complete": DatabaseConnection._indexes_setup_complete,
        "failed_indexes": sorted(DatabaseConnection._failed_indexes),
        "successful_indexes": sorted(DatabaseConnection._successful_indexes)
    }
