from bson import ObjectId
from datetime import datetime
from typing import Dict, Any, Optional, List

from src.shared.utils import utc_now
from .workflow import ClassState

class Class:
    """
    Modelo para representar una sesión de clase.
    Es la raíz del flujo de preparación: guía, evaluaciones y retroalimentación
    cuelgan de ella. topic_guide_id es None para temas temporales.
    """
    def __init__(
        self,
        teacher_id: ObjectId,
        topic_id: ObjectId,
        group_id: Optional[ObjectId] = None,
        scheduled_date: Optional[datetime] = None,
        duration_minutes: int = 45,
        age_group: Optional[str] = None,
        method_tags: Optional[List[str]] = None,
        context: str = "",
        observations: str = "",
        cross_cutting_areas: Optional[List[str]] = None,
        session_number: int = 1,
        topic_guide_id: Optional[ObjectId] = None,
        state: str = ClassState.DRAFT.value,
        current_guide_version_id: Optional[ObjectId] = None,
        created_at: Optional[datetime] = None,
        _id: Optional[ObjectId] = None
    ):
        self._id = _id or ObjectId()
        self.teacher_id = teacher_id
        self.topic_id = topic_id
        self.group_id = group_id
        self.scheduled_date = scheduled_date
        self.duration_minutes = duration_minutes
        self.age_group = age_group
        self.method_tags = method_tags or []
        self.context = context
        self.observations = observations
        self.cross_cutting_areas = cross_cutting_areas or []
        self.session_number = session_number
        self.topic_guide_id = topic_guide_id
        self.state = state
        self.current_guide_version_id = current_guide_version_id
        self.created_at = created_at or utc_now()

    def to_dict(self) -> Dict[str, Any]:
        """Convierte el objeto a un diccionario para almacenamiento en MongoDB"""
        return {
            "_id": self._id,
            "teacher_id": self.teacher_id,
            "topic_id": self.topic_id,
            "group_id": self.group_id,
            "scheduled_date": self.scheduled_date,
            "duration_minutes": self.duration_minutes,
            "age_group": self.age_group,
            "method_tags": self.method_tags,
            "context": self.context,
            "observations": self.observations,
            "cross_cutting_areas": self.cross_cutting_areas,
            "session_number": self.session_number,
            "topic_guide_id": self.topic_guide_id,
            "state": self.state,
            "current_guide_version_id": self.current_guide_version_id,
            "created_at": self.created_at,
            "updated_at": self.created_at
        }


class TemporaryTopic:
    """Tema creado ad hoc para una clase extraordinaria"""
    def __init__(self, name: str, subject_id: Optional[ObjectId], created_by: ObjectId,
                 description: str = "", objectives: Optional[List[str]] = None,
                 estimated_duration: Optional[int] = None):
        self._id = ObjectId()
        self.name = name
        self.subject_id = subject_id
        self.created_by = created_by
        self.description = description
        self.objectives = objectives or []
        self.estimated_duration = estimated_duration

    def to_dict(self) -> Dict[str, Any]:
        return {
            "_id": self._id,
            "name": self.name,
            "description": self.description,
            "objectives": self.objectives,
            "subject_id": self.subject_id,
            "estimated_duration": self.estimated_duration,
            "is_temporary": True,
            "created_by": self.created_by,
            "created_at": utc_now()
        }
