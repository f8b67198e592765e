from bson import ObjectId
from datetime import datetime
from typing import Dict, Any, Optional, List, Union
from pydantic import BaseModel, Field, field_validator

from src.shared.constants import GUIDE_VERSION_STATES
from src.shared.utils import utc_now


class StructureStep(BaseModel):
    """Fase cronometrada de la guía"""
    duration: str = ""
    activity: str
    description: str = ""

    @field_validator("duration", "activity", "description", mode="before")
    @classmethod
    def as_text(cls, value):
        return "" if value is None else str(value).strip()


def _clean_text_list(value) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(item).strip() for item in value if item is not None and str(item).strip()]


def _clean_structure(value) -> List[Any]:
    # Pasos sin actividad se descartan en lugar de invalidar la guía completa
    if not isinstance(value, list):
        return []
    return [step for step in value if isinstance(step, dict) and str(step.get("activity") or "").strip()]


class GuideDraft(BaseModel):
    """Contenido de guía devuelto por el servicio de generación"""
    objectives: List[str] = Field(default_factory=list)
    structure: List[StructureStep] = Field(default_factory=list)
    guiding_questions: List[str] = Field(default_factory=list)

    @field_validator("objectives", "guiding_questions", mode="before")
    @classmethod
    def clean_lists(cls, value):
        return _clean_text_list(value)

    @field_validator("structure", mode="before")
    @classmethod
    def clean_steps(cls, value):
        return _clean_structure(value)

    def is_usable(self) -> bool:
        return bool(self.objectives) and bool(self.structure)


class GuideEdits(BaseModel):
    """Ediciones manuales que reemplazan campos completos de la guía"""
    objectives: Optional[List[str]] = None
    structure: Optional[List[StructureStep]] = None
    guiding_questions: Optional[List[str]] = None

    def apply_to(self, content: Dict[str, Any]) -> Dict[str, Any]:
        updated = dict(content)
        for field, value in self.model_dump(exclude_none=True).items():
            updated[field] = value
        return updated


class GuideVersion:
    """
    Instantánea inmutable de una guía de clase.
    Solo los campos de aprobación cambian después de insertada.
    """
    def __init__(
        self,
        class_id: ObjectId,
        version_number: int,
        objectives: List[str],
        structure: List[Dict[str, Any]],
        guiding_questions: List[str],
        generation_context: Optional[Dict[str, Any]] = None,
        state: str = GUIDE_VERSION_STATES["DRAFT"],
        is_final: bool = False,
        ai_generated: bool = True,
        created_by: Optional[ObjectId] = None,
        created_at: Optional[datetime] = None,
        _id: Optional[ObjectId] = None
    ):
        self._id = _id or ObjectId()
        self.class_id = class_id
        self.version_number = version_number
        self.objectives = objectives
        self.structure = structure
        self.guiding_questions = guiding_questions
        self.generation_context = generation_context or {}
        self.state = state
        self.is_final = is_final
        self.ai_generated = ai_generated
        self.created_by = created_by
        self.created_at = created_at or utc_now()

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "_id": self._id,
            "class_id": self.class_id,
            "version_number": self.version_number,
            "objectives": self.objectives,
            "structure": self.structure,
            "guiding_questions": self.guiding_questions,
            "generation_context": self.generation_context,
            "state": self.state,
            "is_final": self.is_final,
            "ai_generated": self.ai_generated,
            "created_by": self.created_by,
            "created_at": self.created_at,
            "approved_by": None,
            "approved_at": None
        }
        if self.state == GUIDE_VERSION_STATES["FINAL"]:
            data["approved_by"] = self.created_by
            data["approved_at"] = self.created_at
        return data


def guide_content(version: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Campos de contenido de una versión, listos para copiarse a otra"""
    version = version or {}
    return {
        "objectives": list(version.get("objectives") or []),
        "structure": list(version.get("structure") or []),
        "guiding_questions": list(version.get("guiding_questions") or []),
    }
