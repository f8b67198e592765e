"""
Utilidades generales para toda la aplicación.

IMPORTANTE: Para decoradores como handle_errors, auth_required y validate_json,
importar desde src.shared.decorators, NO desde este archivo.
"""

from datetime import datetime, timezone
from typing import Optional
from bson import ObjectId

__all__ = ['parse_date', 'utc_now', 'ensure_json_serializable', 'count_words']

def parse_date(date_string: str) -> Optional[datetime]:
    """Parsea diferentes formatos de fecha a datetime"""
    if not date_string:
        return None

    try:
        return datetime.fromisoformat(date_string)
    except (ValueError, TypeError):
        pass

    formats_to_try = [
        "%Y-%m-%d",
        "%d/%m/%Y",
        "%Y/%m/%d",
        "%a, %d %b %Y %H:%M:%S %Z"
    ]

    for format_str in formats_to_try:
        try:
            return datetime.strptime(date_string, format_str)
        except ValueError:
            continue
    return None

def utc_now() -> datetime:
    return datetime.now(timezone.utc)

def ensure_json_serializable(data):
    """Convierte ObjectId y fechas para garantizar que el objeto sea JSON serializable"""
    if isinstance(data, list):
        return [ensure_json_serializable(item) for item in data]
    elif isinstance(data, dict):
        return {key: ensure_json_serializable(value) for key, value in data.items()}
    elif isinstance(data, ObjectId):
        return str(data)
    elif isinstance(data, datetime):
        return data.isoformat()
    else:
        return data

def count_words(text: str) -> int:
    return len((text or "").split())
