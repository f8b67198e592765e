from typing import Dict, Any, List, Optional, Iterable
from bson import ObjectId
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import PyMongoError

from src.shared.standardization import VerificationBaseService
from src.shared.exceptions import AppException, NotFoundError, ValidationError
from src.shared.constants import QUIZ_KINDS, FEEDBACK_AUDIENCES
from src.shared.logging import log_info, log_error
from src.llm.parsing import parse_structured
from src.llm.services import get_generative_client
from src.classes.workflow import ClassWorkflow, WorkflowOperation
from src.quizzes.statistics import completed_responses, student_results, summarize_responses
from .models import Feedback, FeedbackBatch
from .prompts import AUDIENCE_SPECS, build_student_prompt, build_group_prompt

MODULE = "feedback.services"

# Audiencias que reciben una retroalimentación por estudiante
PER_STUDENT_AUDIENCES = (
    FEEDBACK_AUDIENCES["STUDENT"],
    FEEDBACK_AUDIENCES["TEACHER_INDIVIDUAL"],
    FEEDBACK_AUDIENCES["GUARDIAN"],
)


class FeedbackService(VerificationBaseService):
    """
    Retroalimentación de la evaluación final para cuatro audiencias.

    Cada solicitud al servicio de generación y su inserción forman una unidad
    independiente: un fallo se registra en el lote y no deshace las filas ya
    escritas.
    """

    def __init__(self, db=None, ai_client=None):
        super().__init__(collection_name="feedback", db=db)
        self.workflow = ClassWorkflow(self.db)
        self.ai_client = ai_client or get_generative_client()

    def _generate_unit(self, batch: FeedbackBatch, class_doc: Dict, quiz: Dict, audience: str,
                       prompt: str, student_id=None) -> None:
        spec = AUDIENCE_SPECS[audience]
        try:
            result = self.ai_client.generate(
                spec.system_prompt,
                prompt,
                temperature=spec.temperature,
                max_tokens=spec.max_tokens,
                json_output=True
            )
            fallback = spec.draft_model()
            draft = parse_structured(result.content, spec.draft_model, fallback, MODULE)
            row = Feedback(
                class_id=class_doc["_id"],
                quiz_id=quiz["_id"],
                audience=audience,
                content=draft.model_dump(),
                student_id=student_id,
                ai_generated=draft is not fallback
            ).to_dict()
            self.collection.insert_one(row)
        except AppException as e:
            log_error(f"Fallo la retroalimentación {audience} del estudiante {student_id}: {e.message}", module=MODULE)
            batch.record_failure(audience, student_id, e.message)
            return
        except PyMongoError as e:
            log_error(f"No se pudo guardar la retroalimentación {audience} del estudiante {student_id}", e, MODULE)
            batch.record_failure(audience, student_id, str(e))
            return
        batch.record_success(audience, student_id, row["_id"])

    @staticmethod
    def _wanted_units(only: Optional[Iterable[Dict[str, Any]]]) -> Optional[set]:
        if only is None:
            return None
        units = set()
        for unit in only:
            audience = unit.get("audience")
            if audience not in FEEDBACK_AUDIENCES.values():
                raise ValidationError(f"Audiencia inválida: {audience}")
            student_id = unit.get("student_id")
            units.add((audience, str(student_id) if student_id and audience != FEEDBACK_AUDIENCES["TEACHER_GROUP"] else None))
        return units

    def generate_feedback(self, teacher_id: str, class_id: str, post_quiz_id: str,
                          only: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
        """
        Genera la retroalimentación de la evaluación final.

        Args:
            only: Unidades {audience, student_id} a generar; por defecto todas.
                  Permite reintentar solo las que fallaron en un lote anterior.

        Returns:
            Dict con generated_count, failed_count, breakdown_by_kind, group_stats y failed
        """
        class_doc = self.get_owned_class(class_id, teacher_id)
        quiz, _ = self.get_owned_quiz(post_quiz_id, teacher_id)
        if quiz["class_id"] != class_doc["_id"]:
            raise NotFoundError("Evaluación no encontrada")
        if quiz.get("kind") != QUIZ_KINDS["POST"]:
            raise ValidationError("La retroalimentación se genera sobre la evaluación final")
        self.workflow.ensure_transition(class_doc, WorkflowOperation.GENERATE_FEEDBACK)
        wanted = self._wanted_units(only)

        responses = completed_responses(self.db, quiz["_id"])
        if not responses:
            raise ValidationError("No hay respuestas completadas de la evaluación final")

        questions = list(self.db.questions.find({"quiz_id": quiz["_id"]}).sort("order", ASCENDING))
        results = student_results(questions, responses)
        group_stats = summarize_responses(questions, responses)
        responses_by_id = {r["_id"]: r for r in responses}
        student_ids = [r["student_id"] for r in results if r.get("student_id") is not None]
        students = {str(s["_id"]): s for s in self.db.students.find({"_id": {"$in": student_ids}})}

        batch = FeedbackBatch()
        for audience in PER_STUDENT_AUDIENCES:
            for result in results:
                student_id = result["student_id"]
                if wanted is not None and (audience, str(student_id)) not in wanted:
                    continue
                prompt = build_student_prompt(
                    audience,
                    students.get(str(student_id), {}),
                    result,
                    responses_by_id[result["response_id"]],
                    questions
                )
                self._generate_unit(batch, class_doc, quiz, audience, prompt, student_id)

        if wanted is None or (FEEDBACK_AUDIENCES["TEACHER_GROUP"], None) in wanted:
            group = self.db.groups.find_one({"_id": class_doc.get("group_id")}) or {}
            self._generate_unit(
                batch, class_doc, quiz, FEEDBACK_AUDIENCES["TEACHER_GROUP"],
                build_group_prompt(group, students, results, group_stats)
            )

        if batch.succeeded:
            self.workflow.advance(class_doc, WorkflowOperation.GENERATE_FEEDBACK)
        else:
            log_error(f"No se generó ninguna retroalimentación para la clase {class_doc['_id']}", module=MODULE)

        log_info(
            f"Retroalimentación de la clase {class_doc['_id']}: "
            f"{len(batch.succeeded)} generadas, {len(batch.failed)} fallidas",
            MODULE
        )
        return {
            "generated_count": len(batch.succeeded),
            "failed_count": len(batch.failed),
            "breakdown_by_kind": batch.breakdown_by_kind(),
            "group_stats": group_stats,
            "failed": batch.failed,
            "class_state": class_doc.get("state")
        }

    def list_feedback(self, teacher_id: str, class_id: str, audience: Optional[str] = None,
                      student_id: Optional[str] = None) -> List[Dict]:
        class_doc = self.get_owned_class(class_id, teacher_id)
        query = {"class_id": class_doc["_id"]}
        if audience:
            if audience not in FEEDBACK_AUDIENCES.values():
                raise ValidationError(f"Audiencia inválida: {audience}")
            query["audience"] = audience
        if student_id:
            if not ObjectId.is_valid(student_id):
                raise ValidationError("ID de estudiante inválido")
            query["student_id"] = ObjectId(student_id)
        return list(self.collection.find(query).sort("created_at", DESCENDING))
