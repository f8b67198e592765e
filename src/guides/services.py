from typing import Dict, Any, List, Optional
from bson import ObjectId
from pymongo import DESCENDING
from pymongo.errors import DuplicateKeyError
from flask import current_app, has_app_context

from src.shared.standardization import BaseService, VerificationBaseService
from src.shared.exceptions import NotFoundError, ConflictError
from src.shared.constants import GUIDE_VERSION_STATES, QUIZ_KINDS
from src.shared.logging import log_info, log_warning
from src.shared.utils import utc_now
from src.llm.parsing import parse_structured
from src.llm.services import get_generative_client
from src.classes.workflow import ClassWorkflow, WorkflowOperation, approval_operation
from .models import GuideVersion, GuideDraft
from .prompts import GUIDE_SYSTEM_PROMPT, build_guide_prompt

MODULE = "guides.services"

DEFAULT_VERSION_ATTEMPTS = 5


class GuideVersionStore(BaseService):
    """
    Historial de versiones de guía de cada clase.

    La numeración se apoya en el índice único (class_id, version_number):
    se lee el máximo, se inserta máximo+1 y, si otro escritor ganó ese número,
    se vuelve a leer y se reintenta.
    """

    def __init__(self, db=None, max_attempts: Optional[int] = None):
        super().__init__(collection_name="guide_versions", db=db)
        if max_attempts is None:
            max_attempts = current_app.config.get("GUIDE_VERSION_MAX_ATTEMPTS", DEFAULT_VERSION_ATTEMPTS) \
                if has_app_context() else DEFAULT_VERSION_ATTEMPTS
        self.max_attempts = max(1, int(max_attempts))

    def latest_version_number(self, class_id: ObjectId) -> int:
        latest = list(
            self.collection.find({"class_id": class_id}).sort("version_number", DESCENDING).limit(1)
        )
        return latest[0]["version_number"] if latest else 0

    def create_version(self, class_id: ObjectId, content: Dict[str, Any],
                       generation_context: Dict[str, Any] = None,
                       state: str = GUIDE_VERSION_STATES["DRAFT"],
                       ai_generated: bool = True, created_by: ObjectId = None) -> Dict:
        """
        Inserta una nueva versión con el número siguiente al máximo actual.

        Raises:
            ConflictError: Si tras max_attempts intentos no se obtuvo un número libre
        """
        for attempt in range(1, self.max_attempts + 1):
            number = self.latest_version_number(class_id) + 1
            version = GuideVersion(
                class_id=class_id,
                version_number=number,
                objectives=content.get("objectives", []),
                structure=content.get("structure", []),
                guiding_questions=content.get("guiding_questions", []),
                generation_context=generation_context,
                state=state,
                is_final=state == GUIDE_VERSION_STATES["FINAL"],
                ai_generated=ai_generated,
                created_by=created_by
            ).to_dict()
            try:
                self.collection.insert_one(version)
            except DuplicateKeyError:
                log_warning(
                    f"Versión {number} de la clase {class_id} ya fue creada por otra solicitud "
                    f"(intento {attempt}/{self.max_attempts})",
                    MODULE
                )
                continue
            log_info(f"Versión {number} de guía creada para la clase {class_id}", MODULE)
            return version

        raise ConflictError("No se pudo asignar un número de versión a la guía; vuelve a intentarlo")

    def list_versions(self, class_id: ObjectId) -> List[Dict]:
        return list(self.collection.find({"class_id": class_id}).sort("version_number", DESCENDING))

    def get_version(self, class_id: ObjectId, version_id: str) -> Dict:
        """
        Raises:
            NotFoundError: Si la versión no existe o pertenece a otra clase
        """
        if not ObjectId.is_valid(str(version_id)):
            raise NotFoundError("Versión de guía no encontrada")
        version = self.collection.find_one({"_id": ObjectId(str(version_id)), "class_id": class_id})
        if not version:
            raise NotFoundError("Versión de guía no encontrada")
        return version

    def mark_approved(self, version: Dict, approved_by: ObjectId) -> Dict:
        """Aprueba una versión en borrador; una versión ya aprobada o final conserva su fecha"""
        if version.get("state") in (GUIDE_VERSION_STATES["APPROVED"], GUIDE_VERSION_STATES["FINAL"]):
            return version
        changes = {
            "state": GUIDE_VERSION_STATES["APPROVED"],
            "approved_by": approved_by,
            "approved_at": utc_now()
        }
        self.collection.update_one(
            {"_id": version["_id"], "state": GUIDE_VERSION_STATES["DRAFT"]},
            {"$set": changes}
        )
        return self.collection.find_one({"_id": version["_id"]})


def fallback_guide(topic: Dict[str, Any], duration: int) -> GuideDraft:
    """Guía mínima usada cuando la respuesta del servicio no es interpretable"""
    name = topic.get("name") or "el tema"
    opening = max(5, duration // 6)
    closing = max(5, duration // 6)
    development = max(5, duration - opening - closing)
    return GuideDraft(
        objectives=topic.get("objectives") or [f"Comprender los conceptos centrales de {name}"],
        structure=[
            {"duration": f"{opening} min", "activity": "Inicio",
             "description": "Activación de saberes previos y presentación del propósito"},
            {"duration": f"{development} min", "activity": "Desarrollo",
             "description": f"Trabajo guiado sobre {name}"},
            {"duration": f"{closing} min", "activity": "Cierre",
             "description": "Síntesis y verificación de lo aprendido"},
        ],
        guiding_questions=[f"¿Qué sabemos ya sobre {name}?", f"¿Dónde encontramos {name} en la vida diaria?"]
    )


class GuideService(VerificationBaseService):
    """Generación y aprobación de guías de clase"""

    def __init__(self, db=None, ai_client=None):
        super().__init__(collection_name="guide_versions", db=db)
        self.store = GuideVersionStore(db=self.db)
        self.workflow = ClassWorkflow(self.db)
        self.ai_client = ai_client or get_generative_client()

    def generate_guide(self, teacher_id: str, class_id: str, method_tags: List[str],
                       extra_context: str = "") -> Dict[str, Any]:
        """
        Genera una nueva versión de guía y la deja como versión actual.

        Returns:
            Dict con objectives, structure, guiding_questions, version_id y version_number
        """
        class_doc = self.get_owned_class(class_id, teacher_id)
        self.workflow.ensure_transition(class_doc, WorkflowOperation.GENERATE_GUIDE)

        topic = self.get_topic(class_doc)
        group = self.db.groups.find_one({"_id": class_doc.get("group_id")}) if class_doc.get("group_id") else None
        pending = list(self.db.recommendations.find({"class_id": class_doc["_id"], "applied": False}))
        method_tags = [str(tag) for tag in (method_tags or [])]

        previous_state = class_doc.get("state")
        self.workflow.advance(class_doc, WorkflowOperation.GENERATE_GUIDE, {
            "method_tags": method_tags,
            "context": extra_context or class_doc.get("context", "")
        })

        try:
            result = self.ai_client.generate(
                GUIDE_SYSTEM_PROMPT,
                build_guide_prompt(topic, group or {}, class_doc, method_tags, extra_context, pending),
                temperature=0.7,
                max_tokens=2000,
                json_output=True
            )
        except Exception:
            self.workflow.restore(class_doc, previous_state)
            raise

        duration = class_doc.get("duration_minutes", 45)
        draft = parse_structured(result.content, GuideDraft, GuideDraft(), MODULE)
        used_fallback = not draft.is_usable()
        if used_fallback:
            draft = fallback_guide(topic, duration)

        content = draft.model_dump()
        version = self.store.create_version(
            class_doc["_id"],
            content,
            generation_context={
                "method_tags": method_tags,
                "extra_context": extra_context,
                "recommendation_ids": [r["_id"] for r in pending],
                "model": result.model,
                "fallback": used_fallback
            },
            created_by=class_doc["teacher_id"]
        )
        self.workflow.advance(class_doc, WorkflowOperation.COMPLETE_GUIDE_GENERATION, {
            "current_guide_version_id": version["_id"]
        })

        return {
            **content,
            "version_id": version["_id"],
            "version_number": version["version_number"]
        }

    def approve_guide(self, teacher_id: str, class_id: str, version_id: str) -> Dict[str, Any]:
        """
        Aprueba una versión de la clase y la deja como actual.
        No crea la evaluación diagnóstica. Durante la remediación la clase
        permanece en modifying_guide hasta que la guía se finaliza.
        """
        class_doc = self.get_owned_class(class_id, teacher_id)
        version = self.store.get_version(class_doc["_id"], version_id)
        operation = approval_operation(class_doc.get("state"))
        self.workflow.ensure_transition(class_doc, operation)

        approved = self.store.mark_approved(version, class_doc["teacher_id"])
        self.workflow.advance(class_doc, operation, {
            "current_guide_version_id": approved["_id"]
        })

        pre_quiz = self.db.quizzes.find_one({"class_id": class_doc["_id"], "kind": QUIZ_KINDS["PRE"]})
        return {
            "approved_version": approved,
            "class_state": class_doc["state"],
            "has_pre_quiz": pre_quiz is not None,
            "pre_quiz_id": pre_quiz["_id"] if pre_quiz else None
        }

    def list_versions(self, teacher_id: str, class_id: str) -> Dict[str, Any]:
        class_doc = self.get_owned_class(class_id, teacher_id)
        return {
            "current_guide_version_id": class_doc.get("current_guide_version_id"),
            "versions": self.store.list_versions(class_doc["_id"])
        }

    def get_version(self, teacher_id: str, class_id: str, version_id: str) -> Dict:
        class_doc = self.get_owned_class(class_id, teacher_id)
        return self.store.get_version(class_doc["_id"], version_id)
