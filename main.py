from flask import Flask, jsonify, request
from flask_cors import CORS
from flask_jwt_extended import JWTManager
from src.shared.database import get_db, setup_database_indexes, get_index_setup_status
from src.shared.limiter import init_limiter
from config import active_config, validate_env_vars
import logging
import os
import sys
from src.shared.constants import APP_PREFIX, APP_NAME

# Configuración de logging
logging_level = logging.DEBUG if active_config.DEBUG else logging.INFO
logging.basicConfig(
    level=logging_level,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Verificar variables de entorno críticas
if not validate_env_vars():
    logger.critical("Faltan variables de entorno críticas. Por favor, configure el archivo .env")
    if os.getenv('ENFORCE_ENV_VALIDATION', '0') == '1':
        sys.exit(1)
    else:
        logger.warning("Continuando a pesar de la falta de variables de entorno. Esto puede causar errores.")

# Importar Blueprints
from src.classes.routes import classes_bp
from src.guides.routes import guides_bp
from src.quizzes.routes import quizzes_bp
from src.remediation.routes import remediation_bp
from src.feedback.routes import feedback_bp

# Rutas cuyo cuerpo no se registra ni siquiera en modo detallado
SENSITIVE_ENDPOINTS = ['/api/feedback/']


def create_app(config_object=active_config):
    """
    Crea y configura la aplicación Flask
    """
    app = Flask(APP_NAME)

    # Aplicar configuración
    app.config.from_object(config_object)

    # Configurar CORS
    CORS(app, resources={
        rf"{APP_PREFIX}/*": {
            "origins": app.config["CORS_ORIGINS"],
            "methods": ["GET", "POST", "PUT", "DELETE", "OPTIONS"],
            "allow_headers": ["Content-Type", "Authorization"],
            "supports_credentials": True,
            "automatic_options": True
        }
    })

    # Desactivar modo estricto para slashes en URLs
    app.url_map.strict_slashes = False

    # Inicializar JWT y límites de solicitudes
    JWTManager(app)
    init_limiter(app)

    # Sistema unificado de logging para endpoints
    @app.after_request
    def log_response(response):
        api_logging = app.config.get('API_LOGGING', 'basic')

        if api_logging == 'none':
            return response

        method = request.method
        path = request.path
        status = response.status_code

        if api_logging == 'basic':
            logger.info(f"API: {method} {path} - Status: {status}")
            return response

        # Logging detallado (api_logging == 'detailed')
        request_data = None
        if request.method in ['POST', 'PUT', 'PATCH'] and request.is_json:
            request_data = request.get_json(silent=True) or "Error al parsear JSON"
        elif request.args:
            logger.info(f"URL Query Params: {dict(request.args)}")

        response_data = None
        if response.content_type == 'application/json':
            response_data = response.get_json(silent=True)

        is_sensitive = any(endpoint in path for endpoint in SENSITIVE_ENDPOINTS)

        logger.info(f"API REQUEST: {method} {path}")
        if request_data and not is_sensitive:
            logger.info(f"Request Data: {request_data}")

        logger.info(f"API RESPONSE: {method} {path} - Status: {status}")
        if response_data and not is_sensitive:
            logger.info(f"Response Data: {response_data}")

        return response

    # Verificar conexión a la base de datos
    try:
        get_db()
        logger.info("Conexión a MongoDB establecida")

        # Los índices únicos de versiones y evaluaciones sostienen la consistencia del flujo
        logger.info("Configurando índices de la base de datos...")
        if setup_database_indexes():
            logger.info("Índices configurados correctamente")
        else:
            logger.warning("No se pudieron configurar todos los índices")
    except Exception as e:
        logger.error(f"Error al conectar a MongoDB: {str(e)}")
        # No lanzar error para permitir ejecución aunque la BD no esté disponible
        logger.warning("La aplicación se está ejecutando sin conexión a la base de datos. Las operaciones pueden fallar.")

    @app.errorhandler(404)
    def handle_not_found(error):
        return jsonify({
            "success": False,
            "error": "NOT_FOUND",
            "message": "Recurso no encontrado"
        }), 404

    @app.errorhandler(429)
    def handle_rate_limit(error):
        return jsonify({
            "success": False,
            "error": "DEMASIADAS_SOLICITUDES",
            "message": f"Límite de solicitudes excedido: {error.description}"
        }), 429

    # Excepciones que escapan a handle_errors
    @app.errorhandler(Exception)
    def handle_unhandled_exception(error):
        from src.shared.exceptions import AppException
        from werkzeug.exceptions import HTTPException

        if isinstance(error, AppException):
            response = {
                "success": False,
                "error": error.__class__.__name__,
                "message": str(error.message)
            }
            if error.details:
                response["details"] = error.details
            return jsonify(response), error.code

        if isinstance(error, HTTPException):
            return jsonify({
                "success": False,
                "error": error.name.upper().replace(" ", "_"),
                "message": error.description
            }), error.code

        logger.exception(f"Error no controlado: {error}")
        return jsonify({
            "success": False,
            "error": "ERROR_SERVIDOR",
            "message": "Error interno del servidor"
        }), 500

    # Registrar Blueprints
    app.register_blueprint(classes_bp, url_prefix=f'{APP_PREFIX}/classes')
    app.register_blueprint(guides_bp, url_prefix=f'{APP_PREFIX}/guides')
    app.register_blueprint(quizzes_bp, url_prefix=f'{APP_PREFIX}/quizzes')
    app.register_blueprint(remediation_bp, url_prefix=f'{APP_PREFIX}/remediation')
    app.register_blueprint(feedback_bp, url_prefix=f'{APP_PREFIX}/feedback')

    @app.route('/')
    def health_check():
        """Endpoint para verificar la salud de la aplicación"""
        indexes = get_index_setup_status()
        return jsonify({
            "status": "healthy" if not indexes["failed_indexes"] else "degraded",
            "version": "1.0.0",
            "env": os.getenv('FLASK_ENV', 'development'),
            "indexes": indexes
        })

    return app


app = create_app()

if __name__ == '__main__':
    logger.info(f"Iniciando aplicación en modo {os.getenv('FLASK_ENV', 'development')}")
    app.run(
        debug=app.config['DEBUG'],
        host='0.0.0.0',
        port=app.config['PORT']
    )
