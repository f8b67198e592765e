import logging
from flask import current_app, has_app_context

def get_logger(name: str = None) -> logging.Logger:
    """
    Obtiene un logger para el módulo especificado.
    Dentro de un contexto de Flask se usa el logger de la aplicación.

    Args:
        name: Nombre del módulo o servicio que solicita el logger

    Returns:
        logging.Logger: Logger configurado
    """
    if has_app_context():
        return current_app.logger
    return logging.getLogger(name)

def _format(message: str, module: str = None) -> str:
    return f"[{module}] {message}" if module else message

def log_error(message: str, error: Exception = None, module: str = None, exc_info: bool = False):
    """
    Registra un mensaje de error en el log.

    Args:
        message: Mensaje descriptivo del error
        error: Excepción que causó el error (opcional)
        module: Nombre del módulo donde ocurrió el error (opcional)
        exc_info: Si es True se adjunta la traza de la excepción en curso
    """
    logger = get_logger(module)
    if error:
        logger.error(_format(f"{message}: {str(error)}", module), exc_info=exc_info)
    else:
        logger.error(_format(message, module), exc_info=exc_info)

def log_info(message: str, module: str = None):
    """Registra un mensaje informativo en el log."""
    get_logger(module).info(_format(message, module))

def log_warning(message: str, module: str = None):
    """Registra un mensaje de advertencia en el log."""
    get_logger(module).warning(_format(message, module))
