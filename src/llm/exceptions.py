"""
Taxonomía de errores del servicio externo de generación de texto.

Solo RateLimitedError y TransportError se reintentan dentro del cliente;
el resto se propaga de inmediato al llamador.
"""

from src.shared.exceptions import AppException


class GenerationError(AppException):
    """Error base del servicio de generación"""

    kind = "generation"
    status_code = AppException.BAD_GATEWAY
    retryable = False

    def __init__(self, message: str, upstream_status: int = None, details: dict = None):
        details = dict(details or {})
        details.setdefault("kind", self.kind)
        if upstream_status is not None:
            details.setdefault("upstream_status", upstream_status)
        super().__init__(message, self.status_code, details)
        self.upstream_status = upstream_status


class RateLimitedError(GenerationError):
    kind = "rate_limited"
    status_code = AppException.TOO_MANY_REQUESTS
    retryable = True


class InsufficientQuotaError(GenerationError):
    kind = "insufficient_quota"
    status_code = AppException.PAYMENT_REQUIRED


class UpstreamUnauthorizedError(GenerationError):
    kind = "unauthorized"


class UpstreamBadRequestError(GenerationError):
    kind = "bad_request"


class TransportError(GenerationError):
    """Fallo de red, timeout, error 5xx o respuesta sin el formato esperado"""

    kind = "transport"
    retryable = True


RETRYABLE_ERRORS = (RateLimitedError, TransportError)
