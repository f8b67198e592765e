from bson import ObjectId
from datetime import datetime
from typing import Dict, Any, Optional, List
from pydantic import BaseModel, Field, field_validator

from src.shared.constants import RECOMMENDATION_PRIORITIES, RECOMMENDATION_AREAS
from src.shared.utils import utc_now


class RecommendationDraft(BaseModel):
    """Recomendación devuelta por el servicio de generación"""
    title: str = ""
    description: str = ""
    priority: str = "media"
    area: str = "contenido"

    @field_validator("title", "description", mode="before")
    @classmethod
    def as_text(cls, value):
        return "" if value is None else str(value).strip()

    @field_validator("priority", mode="before")
    @classmethod
    def known_priority(cls, value):
        value = str(value or "").strip().lower()
        return value if value in RECOMMENDATION_PRIORITIES else "media"

    @field_validator("area", mode="before")
    @classmethod
    def known_area(cls, value):
        value = str(value or "").strip().lower().replace("í", "i")
        return value if value in RECOMMENDATION_AREAS else "contenido"


class RemediationDraft(BaseModel):
    recommendations: List[RecommendationDraft] = Field(default_factory=list)
    summary: str = "No fue posible generar un resumen del análisis."

    @field_validator("recommendations", mode="before")
    @classmethod
    def drop_malformed(cls, value):
        # Elementos sin título ni descripción no aportan nada a la guía
        if not isinstance(value, list):
            return []
        return [item for item in value
                if isinstance(item, dict) and (item.get("title") or item.get("description"))]

    @field_validator("summary", mode="before")
    @classmethod
    def summary_text(cls, value):
        text = "" if value is None else str(value).strip()
        return text or "No fue posible generar un resumen del análisis."


class Recommendation:
    """
    Sugerencia de cambio para la guía de una clase.
    Solo cambia al marcarse como aplicada a una versión.
    """
    def __init__(
        self,
        class_id: ObjectId,
        source: str,
        title: str,
        description: str,
        priority: str = "media",
        area: str = "contenido",
        quiz_id: Optional[ObjectId] = None,
        previous_class_id: Optional[ObjectId] = None,
        created_at: Optional[datetime] = None,
        _id: Optional[ObjectId] = None
    ):
        self._id = _id or ObjectId()
        self.class_id = class_id
        self.source = source
        self.title = title
        self.description = description
        self.priority = priority
        self.area = area
        self.quiz_id = quiz_id
        self.previous_class_id = previous_class_id
        self.created_at = created_at or utc_now()

    @property
    def content(self) -> str:
        return f"{self.title}\n\n{self.description}\n\nPrioridad: {self.priority}\nÁrea: {self.area}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "_id": self._id,
            "class_id": self.class_id,
            "quiz_id": self.quiz_id,
            "previous_class_id": self.previous_class_id,
            "source": self.source,
            "title": self.title,
            "description": self.description,
            "priority": self.priority,
            "area": self.area,
            "content": self.content,
            "applied": False,
            "applied_to_version_id": None,
            "created_at": self.created_at
        }
