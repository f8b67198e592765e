"""
Excepciones personalizadas para la aplicación.

Estas excepciones son capturadas por el decorador handle_errors en decorators.py
y convertidas automáticamente en respuestas JSON apropiadas. El nombre de la
clase se usa como código de error en la respuesta.

Ejemplos de uso:
    # Lanzar una excepción básica
    raise AppException("Datos inválidos", 400)

    # Usar las subclases del flujo de clases
    raise NotFoundError("Clase no encontrada")
    raise ValidationError("La guía debe estar aprobada", {"estado_guia": "draft"})
    raise ConflictError("La evaluación ya fue publicada")
"""

class AppException(Exception):
    """
    Excepción base para errores de la aplicación.

    Permite especificar un código HTTP personalizado y detalles adicionales.
    """

    # Códigos de error HTTP comunes
    BAD_REQUEST = 400
    UNAUTHORIZED = 401
    PAYMENT_REQUIRED = 402
    FORBIDDEN = 403
    NOT_FOUND = 404
    CONFLICT = 409
    TOO_MANY_REQUESTS = 429
    INTERNAL_ERROR = 500
    BAD_GATEWAY = 502

    def __init__(self, message: str, code: int = BAD_REQUEST, details: dict = None):
        """
        Inicializa una nueva excepción de aplicación.

        Args:
            message: Mensaje descriptivo del error
            code: Código HTTP de estado (por defecto 400)
            details: Diccionario con detalles adicionales del error
        """
        self.message = message
        self.code = code
        self.details = details
        super().__init__(self.message)


class NotFoundError(AppException):
    """
    Recurso inexistente o no perteneciente al profesor que lo solicita.

    Ambos casos producen la misma respuesta para no revelar la existencia
    de recursos ajenos.
    """

    def __init__(self, message: str = "Recurso no encontrado", details: dict = None):
        super().__init__(message, AppException.NOT_FOUND, details)


class ValidationError(AppException):
    """Precondición o dato inválido. No se reintenta."""

    def __init__(self, message: str, details: dict = None):
        super().__init__(message, AppException.BAD_REQUEST, details)


class ConflictError(AppException):
    """La operación choca con el estado actual del recurso."""

    def __init__(self, message: str, details: dict = None):
        super().__init__(message, AppException.CONFLICT, details)
