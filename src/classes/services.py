from typing import Dict, Any, Optional
from pymongo import DESCENDING

from src.shared.standardization import VerificationBaseService
from src.shared.exceptions import NotFoundError, ValidationError
from src.shared.constants import QUIZ_KINDS, RECOMMENDATION_SOURCES
from src.shared.validators import validate_object_id
from src.shared.utils import parse_date, utc_now
from src.shared.logging import log_info
from src.remediation.models import Recommendation
from .models import Class, TemporaryTopic
from .workflow import ClassWorkflow, ClassState, WorkflowOperation, TemporaryTopicBypass, can_transition

MODULE = "classes.services"


class ClassService(VerificationBaseService):
    """Alta de clases, consulta y cierre administrativo del flujo"""

    def __init__(self, db=None):
        super().__init__(collection_name="classes", db=db)
        self.workflow = ClassWorkflow(self.db)

    def create_class(self, teacher_id: str, data: Dict[str, Any]) -> Dict:
        """
        Crea una clase a partir del contexto del paso 1.

        Acepta un tema existente (topic_id), que requiere la guía maestra del
        profesor, o un tema libre (free_topic) que se registra como temporal.
        Si existe una sesión anterior completada del mismo tema y grupo, sus
        observaciones se agregan como recomendación pendiente.
        """
        teacher_oid = validate_object_id(teacher_id, "profesor")
        duration = data.get("duration_minutes", 45)
        if not isinstance(duration, int) or isinstance(duration, bool) or duration <= 0:
            raise ValidationError("duration_minutes debe ser un entero positivo")

        scheduled_date = None
        if data.get("scheduled_date"):
            scheduled_date = parse_date(data["scheduled_date"])
            if scheduled_date is None:
                raise ValidationError(f"Fecha inválida: {data['scheduled_date']}")

        group_id = validate_object_id(data["group_id"], "grupo") if data.get("group_id") else None
        if group_id and not self.db.groups.find_one({"_id": group_id}):
            raise NotFoundError("Grupo no encontrado")

        topic_guide_id = None
        if data.get("free_topic"):
            free_topic = str(data["free_topic"]).strip()
            if not free_topic:
                raise ValidationError("El tema libre no puede estar vacío")
            subject_id = validate_object_id(data["subject_id"], "materia") if data.get("subject_id") else None
            topic = TemporaryTopic(
                name=free_topic,
                subject_id=subject_id,
                created_by=teacher_oid,
                description=data.get("context", ""),
                estimated_duration=data.get("duration_minutes")
            ).to_dict()
            self.db.topics.insert_one(topic)
            topic_id = topic["_id"]
            log_info(f"Tema temporal {topic_id} creado para el profesor {teacher_id}", MODULE)
        elif data.get("topic_id"):
            topic_id = validate_object_id(data["topic_id"], "tema")
            if not self.db.topics.find_one({"_id": topic_id}):
                raise NotFoundError("Tema no encontrado")
            topic_guide = self.db.topic_guides.find_one({"topic_id": topic_id, "teacher_id": teacher_oid})
            if not topic_guide:
                raise ValidationError("El tema no tiene una guía maestra asociada a este profesor")
            topic_guide_id = topic_guide["_id"]
        else:
            raise ValidationError("Se requiere topic_id o free_topic")

        session_query = {"teacher_id": teacher_oid, "topic_id": topic_id, "group_id": group_id}
        last_session = list(self.collection.find(session_query).sort("session_number", DESCENDING).limit(1))
        session_number = (last_session[0].get("session_number", 0) if last_session else 0) + 1

        new_class = Class(
            teacher_id=teacher_oid,
            topic_id=topic_id,
            group_id=group_id,
            scheduled_date=scheduled_date,
            duration_minutes=duration,
            age_group=data.get("age_group"),
            method_tags=data.get("method_tags") or [],
            context=data.get("context", ""),
            cross_cutting_areas=data.get("cross_cutting_areas") or [],
            session_number=session_number,
            topic_guide_id=topic_guide_id
        ).to_dict()
        self.collection.insert_one(new_class)

        previous = self.collection.find_one(
            dict(session_query, state=ClassState.COMPLETED.value),
            sort=[("session_number", DESCENDING)]
        )
        if previous and (previous.get("observations") or "").strip():
            recommendation = Recommendation(
                class_id=new_class["_id"],
                source=RECOMMENDATION_SOURCES["PREVIOUS_CLASS"],
                title=f"Observaciones de la sesión {previous.get('session_number')}",
                description=previous["observations"].strip(),
                previous_class_id=previous["_id"]
            )
            self.db.recommendations.insert_one(recommendation.to_dict())

        log_info(f"Clase {new_class['_id']} creada (sesión {session_number})", MODULE)
        return new_class

    def get_class(self, teacher_id: str, class_id: str) -> Dict:
        """Clase con su versión de guía actual y el resumen de sus evaluaciones"""
        class_doc = self.get_owned_class(class_id, teacher_id)
        quizzes = list(self.db.quizzes.find({"class_id": class_doc["_id"]}))
        return {
            **class_doc,
            "topic": self.get_topic(class_doc),
            "current_guide_version": self.get_current_guide_version(class_doc),
            "quizzes": [
                {"_id": q["_id"], "kind": q.get("kind"), "state": q.get("state"), "sent_at": q.get("sent_at")}
                for q in quizzes
            ]
        }

    def validate_class(self, teacher_id: str, class_id: str) -> Dict:
        """
        Verifica que la clase esté lista para dictarse.

        Solo cuando todas las verificaciones se cumplen y el estado lo permite
        la clase pasa a 'prepared'. Una clase lista que ya avanzó más allá
        (por ejemplo, con la evaluación final enviada) conserva su estado.
        """
        class_doc = self.get_owned_class(class_id, teacher_id)
        topic = self.get_topic(class_doc)
        version = self.get_current_guide_version(class_doc)
        bypass = TemporaryTopicBypass.from_topic(topic)

        kinds = {q.get("kind") for q in self.db.quizzes.find({"class_id": class_doc["_id"]})}
        checks = {
            "has_context": bool((class_doc.get("context") or "").strip() or class_doc.get("method_tags")),
            "has_guide": version is not None,
            "guide_is_final": bool(version and version.get("is_final")) or bool(bypass),
            "has_pre_quiz": QUIZ_KINDS["PRE"] in kinds,
            "has_post_quiz": QUIZ_KINDS["POST"] in kinds,
        }
        ready = all(checks.values())

        if ready and can_transition(class_doc.get("state"), ClassState.PREPARED, WorkflowOperation.VALIDATE_CLASS):
            self.workflow.advance(class_doc, WorkflowOperation.VALIDATE_CLASS)
        elif ready:
            log_info(f"Clase {class_doc['_id']} lista; se mantiene en {class_doc.get('state')}", MODULE)

        return {
            "class_id": class_doc["_id"],
            "ready": ready,
            "checks": checks,
            "missing": [name for name, passed in checks.items() if not passed],
            "class_state": class_doc.get("state")
        }

    def complete_class(self, teacher_id: str, class_id: str, observations: Optional[str] = None) -> Dict:
        """Cierra la clase tras el análisis de resultados, guardando observaciones para la siguiente sesión"""
        class_doc = self.get_owned_class(class_id, teacher_id)
        extra = {"completed_at": utc_now()}
        if observations is not None:
            extra["observations"] = observations
        self.workflow.advance(class_doc, WorkflowOperation.COMPLETE_CLASS, extra)
        return {"class_id": class_doc["_id"], "class_state": class_doc["state"]}
