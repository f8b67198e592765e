from typing import Dict, Any, List, Optional
from bson import ObjectId
from pymongo import ASCENDING, DESCENDING
from pydantic import ValidationError as PydanticValidationError

from src.shared.standardization import VerificationBaseService
from src.shared.exceptions import NotFoundError, ValidationError
from src.shared.constants import QUIZ_KINDS, GUIDE_VERSION_STATES, RECOMMENDATION_SOURCES
from src.shared.logging import log_info, log_warning
from src.shared.utils import utc_now
from src.llm.parsing import parse_structured
from src.llm.services import get_generative_client
from src.classes.workflow import ClassWorkflow, WorkflowOperation
from src.guides.models import GuideDraft, GuideEdits, guide_content
from src.guides.prompts import GUIDE_SYSTEM_PROMPT, build_rewrite_prompt
from src.guides.services import GuideVersionStore
from src.quizzes.statistics import completed_responses, summarize_responses
from .models import Recommendation, RemediationDraft
from .prompts import REMEDIATION_SYSTEM_PROMPT, build_remediation_prompt

MODULE = "remediation.services"


class RemediationService(VerificationBaseService):
    """
    Ciclo de remediación: análisis de la evaluación diagnóstica y
    incorporación de recomendaciones en una nueva versión de la guía.
    """

    def __init__(self, db=None, ai_client=None):
        super().__init__(collection_name="recommendations", db=db)
        self.store = GuideVersionStore(db=self.db)
        self.workflow = ClassWorkflow(self.db)
        self.ai_client = ai_client or get_generative_client()

    def process_pre_quiz_responses(self, teacher_id: str, class_id: str, quiz_id: str) -> Dict[str, Any]:
        """
        Analiza las respuestas completadas de la evaluación diagnóstica y
        guarda las recomendaciones derivadas sin modificar la guía.

        Raises:
            ValidationError: Si no hay respuestas completadas; en ese caso no se escribe nada
        """
        class_doc = self.get_owned_class(class_id, teacher_id)
        quiz, _ = self.get_owned_quiz(quiz_id, teacher_id)
        if quiz["class_id"] != class_doc["_id"]:
            raise NotFoundError("Evaluación no encontrada")
        if quiz.get("kind") != QUIZ_KINDS["PRE"]:
            raise ValidationError("Solo se procesan respuestas de la evaluación diagnóstica")
        self.workflow.ensure_transition(class_doc, WorkflowOperation.PROCESS_PRE_QUIZ)

        responses = completed_responses(self.db, quiz["_id"])
        if not responses:
            raise ValidationError("No hay respuestas completadas para procesar")

        questions = list(self.db.questions.find({"quiz_id": quiz["_id"]}).sort("order", ASCENDING))
        stats = summarize_responses(questions, responses)
        topic = self.get_topic(class_doc)

        result = self.ai_client.generate(
            REMEDIATION_SYSTEM_PROMPT,
            build_remediation_prompt(topic, self.get_current_guide_version(class_doc), stats),
            temperature=0.7,
            max_tokens=2000,
            json_output=True
        )
        draft = parse_structured(result.content, RemediationDraft, RemediationDraft(), MODULE)

        rows = [
            Recommendation(
                class_id=class_doc["_id"],
                source=RECOMMENDATION_SOURCES["PRE_QUIZ"],
                title=item.title,
                description=item.description,
                priority=item.priority,
                area=item.area,
                quiz_id=quiz["_id"]
            ).to_dict()
            for item in draft.recommendations
        ]
        if rows:
            self.collection.insert_many(rows)
        else:
            log_warning(f"El análisis de la evaluación {quiz['_id']} no produjo recomendaciones", MODULE)

        self.workflow.advance(class_doc, WorkflowOperation.PROCESS_PRE_QUIZ)
        log_info(f"{len(rows)} recomendaciones registradas para la clase {class_doc['_id']}", MODULE)

        return {
            "stats": stats,
            "recommendations": rows,
            "summary": draft.summary
        }

    def _selected_recommendations(self, class_doc: Dict, recommendation_ids: List[str]) -> List[Dict]:
        ids = []
        for rec_id in recommendation_ids or []:
            if not ObjectId.is_valid(str(rec_id)):
                raise NotFoundError("Recomendación no encontrada", {"recommendation_id": rec_id})
            if ObjectId(str(rec_id)) not in ids:
                ids.append(ObjectId(str(rec_id)))
        if not ids:
            return []
        selected = list(self.collection.find({"_id": {"$in": ids}, "class_id": class_doc["_id"]}))
        if len(selected) != len(ids):
            found = {r["_id"] for r in selected}
            missing = [str(i) for i in ids if i not in found]
            raise NotFoundError("Recomendación no encontrada", {"recommendation_ids": missing})
        return selected

    def apply_recommendations(self, teacher_id: str, class_id: str, recommendation_ids: List[str],
                              manual_edits: Optional[Dict[str, Any]] = None,
                              finalize: bool = False) -> Dict[str, Any]:
        """
        Crea una nueva versión de la guía a partir de la actual.

        Las ediciones manuales reemplazan campos completos. Las recomendaciones
        seleccionadas que aún no se aplicaron se incorporan con una única
        solicitud de reescritura; si la respuesta no es utilizable se conserva
        el contenido editado y ninguna queda marcada como aplicada.
        Con finalize la versión queda como final.
        """
        class_doc = self.get_owned_class(class_id, teacher_id)
        current = self.get_current_guide_version(class_doc)
        if not current:
            raise NotFoundError("La clase no tiene una versión de guía actual")

        operation = WorkflowOperation.FINALIZE_GUIDE if finalize else WorkflowOperation.APPLY_RECOMMENDATIONS
        self.workflow.ensure_transition(class_doc, operation)

        selected = self._selected_recommendations(class_doc, recommendation_ids)
        pending = [r for r in selected if not r.get("applied")]

        try:
            edits = GuideEdits.model_validate(manual_edits or {})
        except PydanticValidationError as e:
            raise ValidationError("Ediciones manuales inválidas", {"errors": e.errors(include_url=False, include_context=False)})
        content = edits.apply_to(guide_content(current))

        applied = []
        if pending:
            result = self.ai_client.generate(
                GUIDE_SYSTEM_PROMPT,
                build_rewrite_prompt(content, pending, self.get_topic(class_doc)),
                temperature=0.7,
                max_tokens=2500,
                json_output=True
            )
            draft = parse_structured(result.content, GuideDraft, GuideDraft(), MODULE)
            if draft.is_usable():
                content = draft.model_dump()
                applied = pending
            else:
                log_warning("Reescritura no utilizable; se conserva la guía con las ediciones manuales", MODULE)

        version = self.store.create_version(
            class_doc["_id"],
            content,
            generation_context={
                "source": "remediation",
                "base_version_id": current["_id"],
                "recommendation_ids": [r["_id"] for r in applied],
                "manual_edits": sorted(edits.model_dump(exclude_none=True).keys())
            },
            state=GUIDE_VERSION_STATES["FINAL"] if finalize else GUIDE_VERSION_STATES["DRAFT"],
            ai_generated=bool(applied),
            created_by=class_doc["teacher_id"]
        )

        if applied:
            self.collection.update_many(
                {"_id": {"$in": [r["_id"] for r in applied]}, "applied": False},
                {"$set": {"applied": True, "applied_to_version_id": version["_id"], "applied_at": utc_now()}}
            )

        self.workflow.advance(class_doc, operation, {"current_guide_version_id": version["_id"]})

        return {
            "new_version_id": version["_id"],
            "version_number": version["version_number"],
            "is_final": version["is_final"],
            "class_state": class_doc["state"],
            "applied_count": len(applied)
        }

    def list_recommendations(self, teacher_id: str, class_id: str, applied: Optional[bool] = None) -> List[Dict]:
        class_doc = self.get_owned_class(class_id, teacher_id)
        query = {"class_id": class_doc["_id"]}
        if applied is not None:
            query["applied"] = applied
        return list(self.collection.find(query).sort("created_at", DESCENDING))
