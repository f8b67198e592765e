"""
Lectura defensiva de la salida del servicio de generación.

El texto devuelto se trata como dato no confiable: puede venir envuelto en
bloques de código markdown, con texto alrededor o directamente malformado.
Cada lectura tiene un valor de respaldo explícito en lugar de abortar la
operación completa.
"""

import json
import re
from typing import Any, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError as PydanticValidationError

from src.shared.logging import log_warning

T = TypeVar("T", bound=BaseModel)

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)


def _outermost(text: str, opener: str, closer: str) -> Optional[str]:
    start = text.find(opener)
    end = text.rfind(closer)
    if start == -1 or end <= start:
        return None
    return text[start:end + 1]


def parse_ai_json(content: str) -> Optional[Any]:
    """
    Extrae un objeto o arreglo JSON del texto generado.

    Returns:
        El valor decodificado o None si no hay JSON utilizable
    """
    if not content or not isinstance(content, str):
        return None

    candidates = [content.strip()]
    fence = _FENCE_RE.search(content)
    if fence:
        candidates.append(fence.group(1).strip())
    for opener, closer in (("{", "}"), ("[", "]")):
        fragment = _outermost(content, opener, closer)
        if fragment:
            candidates.append(fragment)

    for candidate in candidates:
        try:
            return json.loads(candidate)
        except (json.JSONDecodeError, TypeError):
            continue
    return None


def parse_structured(content: str, model: Type[T], fallback: T, module: str = "llm.parsing") -> T:
    """
    Valida el JSON generado contra un modelo pydantic.

    Args:
        content: Texto devuelto por el servicio
        model: Modelo pydantic con el esquema esperado
        fallback: Instancia devuelta si el texto no es utilizable

    Returns:
        Instancia del modelo o el respaldo indicado
    """
    data = parse_ai_json(content)
    if not isinstance(data, dict):
        log_warning(f"Respuesta no interpretable como {model.__name__}; se usa el valor de respaldo", module)
        return fallback
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        log_warning(f"Respuesta inválida para {model.__name__} ({e.error_count()} errores); se usa el valor de respaldo", module)
        return fallback


def clean_text(content: str) -> str:
    """Quita envolturas de código y comillas sobrantes de una respuesta de texto libre"""
    if not content:
        return ""
    text = content.strip()
    fence = _FENCE_RE.search(text)
    if fence:
        text = fence.group(1).strip()
    if len(text) >= 2 and text[0] == text[-1] and text[0] in ('"', "'"):
        text = text[1:-1].strip()
    return text
