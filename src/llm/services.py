"""
Cliente del servicio externo de generación de texto (chat completions compatible con OpenAI).
"""

import os
import requests
from typing import Dict, Any, Mapping, Optional
from flask import current_app, has_app_context
from tenacity import Retrying, stop_after_attempt, wait_incrementing, retry_if_exception_type

from src.shared.logging import log_info, log_warning, log_error
from .exceptions import (
    GenerationError,
    RateLimitedError,
    InsufficientQuotaError,
    UpstreamUnauthorizedError,
    UpstreamBadRequestError,
    TransportError,
    RETRYABLE_ERRORS,
)
from .models import ChatMessage, GenerationRequest, GenerationResult

MODULE = "llm.services"

DEFAULT_ENDPOINT = "https://ai.gateway.lovable.dev/v1/chat/completions"
DEFAULT_MODEL = "google/gemini-2.5-flash"


class GenerativeTextClient:
    """
    Envía instrucciones de sistema y de usuario al servicio de generación.

    Los errores de límite de tasa y de transporte se reintentan con una espera
    que crece linealmente (retry_delay * intento); cuota, autorización y
    solicitud inválida se propagan sin reintento.
    """

    def __init__(self, api_key: Optional[str], endpoint: str = DEFAULT_ENDPOINT,
                 model: str = DEFAULT_MODEL, max_retries: int = 3,
                 retry_delay: float = 1.0, timeout: float = 60.0):
        self.api_key = api_key
        self.endpoint = endpoint
        self.model = model
        self.max_retries = max(1, int(max_retries))
        self.retry_delay = max(0.0, float(retry_delay))
        self.timeout = timeout

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "GenerativeTextClient":
        return cls(
            api_key=config.get("AI_API_KEY"),
            endpoint=config.get("AI_API_ENDPOINT") or DEFAULT_ENDPOINT,
            model=config.get("AI_MODEL") or DEFAULT_MODEL,
            max_retries=config.get("AI_MAX_RETRIES", 3),
            retry_delay=config.get("AI_RETRY_DELAY", 1.0),
            timeout=config.get("AI_TIMEOUT", 60),
        )

    def generate(self, system_prompt: str, user_prompt: str, temperature: float = 0.7,
                 max_tokens: int = 2000, json_output: bool = False,
                 model: Optional[str] = None) -> GenerationResult:
        """
        Genera texto a partir de una instrucción de sistema y una de usuario.

        Args:
            system_prompt: Instrucción de sistema
            user_prompt: Instrucción de usuario
            temperature: Temperatura de muestreo
            max_tokens: Tamaño máximo de la salida
            json_output: Si es True se solicita un objeto JSON como salida
            model: Modelo a usar en lugar del configurado

        Returns:
            GenerationResult con el contenido, el modelo y el uso de tokens

        Raises:
            GenerationError: Alguna de sus subclases según el tipo de fallo
        """
        if not self.api_key:
            raise UpstreamUnauthorizedError("AI_API_KEY no está configurado")

        request = GenerationRequest(
            model=model or self.model,
            messages=[
                ChatMessage(role="system", content=system_prompt),
                ChatMessage(role="user", content=user_prompt),
            ],
            temperature=temperature,
            max_tokens=max_tokens,
            response_format={"type": "json_object"} if json_output else None,
        )

        retryer = Retrying(
            stop=stop_after_attempt(self.max_retries),
            wait=wait_incrementing(start=self.retry_delay, increment=self.retry_delay),
            retry=retry_if_exception_type(RETRYABLE_ERRORS),
            before_sleep=self._log_retry,
            reraise=True,
        )
        try:
            result = retryer(self._post_completion, request.to_payload())
        except GenerationError as e:
            log_error(f"Generación fallida ({e.kind})", e, MODULE)
            raise

        log_info(
            f"Generación completada con {result.model} "
            f"(tokens: {result.usage.get('total_tokens', 'n/d')})",
            MODULE
        )
        return result

    def _log_retry(self, retry_state):
        error = retry_state.outcome.exception()
        log_warning(
            f"Intento {retry_state.attempt_number}/{self.max_retries} fallido "
            f"({getattr(error, 'kind', 'desconocido')}); reintentando",
            MODULE
        )

    def _post_completion(self, payload: Dict[str, Any]) -> GenerationResult:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        try:
            response = requests.post(self.endpoint, headers=headers, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            raise TransportError(f"Error de conexión con el servicio de generación: {str(e)}")

        status = response.status_code
        if status == 429:
            raise RateLimitedError("Límite de solicitudes excedido. Intenta más tarde.", status)
        if status == 402:
            raise InsufficientQuotaError("Créditos insuficientes en el servicio de generación.", status)
        if status in (401, 403):
            raise UpstreamUnauthorizedError("Credenciales del servicio de generación inválidas.", status)
        if status == 400:
            raise UpstreamBadRequestError(
                f"Solicitud inválida al servicio de generación: {response.text[:200]}", status
            )
        if status < 200 or status >= 300:
            raise TransportError(f"Error del servicio de generación: {status}", status)

        try:
            data = response.json()
        except ValueError as e:
            raise TransportError(f"Respuesta del servicio de generación no es JSON: {str(e)}", status)

        content = None
        choices = data.get("choices") if isinstance(data, dict) else None
        if choices:
            content = (choices[0].get("message") or {}).get("content")
        elif isinstance(data, dict):
            content = data.get("content")

        if content is None:
            raise TransportError("Respuesta del servicio de generación sin contenido", status)

        return GenerationResult(
            content=content,
            model=data.get("model") or payload["model"],
            usage=data.get("usage") or {},
        )


def get_generative_client() -> GenerativeTextClient:
    """Construye el cliente desde la configuración de Flask o, fuera de ella, desde el entorno"""
    if has_app_context():
        return GenerativeTextClient.from_config(current_app.config)
    return GenerativeTextClient.from_config({
        "AI_API_KEY": os.getenv("AI_API_KEY") or os.getenv("LOVABLE_API_KEY"),
        "AI_API_ENDPOINT": os.getenv("AI_API_ENDPOINT"),
        "AI_MODEL": os.getenv("AI_MODEL"),
        "AI_MAX_RETRIES": int(os.getenv("AI_MAX_RETRIES", 3)),
        "AI_RETRY_DELAY": float(os.getenv("AI_RETRY_DELAY", 1.0)),
        "AI_TIMEOUT": float(os.getenv("AI_TIMEOUT", 60)),
    })
