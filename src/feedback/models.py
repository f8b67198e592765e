from bson import ObjectId
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Any, Optional, List, get_origin
from pydantic import BaseModel, Field, field_validator

from src.shared.constants import FEEDBACK_AUDIENCES
from src.shared.utils import utc_now


class FeedbackDraft(BaseModel):
    """
    Base de los contenidos de retroalimentación devueltos por el servicio.
    Los campos de lista descartan elementos vacíos y los de texto aceptan cualquier escalar.
    """

    @field_validator("*", mode="before")
    @classmethod
    def coerce(cls, value, info):
        if get_origin(cls.model_fields[info.field_name].annotation) is list:
            if not isinstance(value, list):
                return []
            return [str(item).strip() for item in value if item is not None and str(item).strip()]
        return "" if value is None else str(value).strip()


class StudentFeedbackDraft(FeedbackDraft):
    strengths: List[str] = Field(default_factory=list)
    growth_areas: List[str] = Field(default_factory=list)
    motivational_message: str = ""
    suggestions: List[str] = Field(default_factory=list)


class TeacherIndividualFeedbackDraft(FeedbackDraft):
    performance_analysis: str = ""
    detected_strengths: List[str] = Field(default_factory=list)
    detected_weaknesses: List[str] = Field(default_factory=list)
    pedagogical_recommendations: List[str] = Field(default_factory=list)
    comprehension_level: str = ""


class TeacherGroupFeedbackDraft(FeedbackDraft):
    general_summary: str = ""
    group_strengths: List[str] = Field(default_factory=list)
    group_weaknesses: List[str] = Field(default_factory=list)
    detected_patterns: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    achieved_learnings: List[str] = Field(default_factory=list)
    pending_learnings: List[str] = Field(default_factory=list)


class GuardianFeedbackDraft(FeedbackDraft):
    performance_summary: str = ""
    achievements: List[str] = Field(default_factory=list)
    support_areas: List[str] = Field(default_factory=list)
    encouraging_message: str = ""
    home_suggestions: List[str] = Field(default_factory=list)


class Feedback:
    """
    Retroalimentación generada para una audiencia.
    Inmutable: regenerar crea filas nuevas.
    """
    def __init__(
        self,
        class_id: ObjectId,
        quiz_id: ObjectId,
        audience: str,
        content: Dict[str, Any],
        student_id: Optional[ObjectId] = None,
        ai_generated: bool = True,
        created_at: Optional[datetime] = None,
        _id: Optional[ObjectId] = None
    ):
        self._id = _id or ObjectId()
        self.class_id = class_id
        self.quiz_id = quiz_id
        self.audience = audience
        self.content = content
        self.student_id = None if audience == FEEDBACK_AUDIENCES["TEACHER_GROUP"] else student_id
        self.ai_generated = ai_generated
        self.created_at = created_at or utc_now()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "_id": self._id,
            "class_id": self.class_id,
            "quiz_id": self.quiz_id,
            "audience": self.audience,
            "student_id": self.student_id,
            "content": self.content,
            "ai_generated": self.ai_generated,
            "created_at": self.created_at
        }


@dataclass
class FeedbackBatch:
    """
    Resultado de una generación por lotes con éxitos parciales.

    Cada unidad (audiencia, estudiante) se registra en succeeded o en failed,
    de modo que se puede reintentar solo el subconjunto fallido.
    """
    succeeded: List[Dict[str, Any]] = field(default_factory=list)
    failed: List[Dict[str, Any]] = field(default_factory=list)

    def record_success(self, audience: str, student_id, feedback_id) -> None:
        self.succeeded.append({"audience": audience, "student_id": student_id, "feedback_id": feedback_id})

    def record_failure(self, audience: str, student_id, error: str) -> None:
        self.failed.append({"audience": audience, "student_id": student_id, "error": error})

    def breakdown_by_kind(self) -> Dict[str, int]:
        breakdown = {audience: 0 for audience in FEEDBACK_AUDIENCES.values()}
        for entry in self.succeeded:
            breakdown[entry["audience"]] += 1
        return breakdown
