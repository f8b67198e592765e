from typing import Dict, Any, List, Optional, Tuple
from pymongo import ASCENDING
from pymongo.errors import DuplicateKeyError, PyMongoError
from pydantic import ValidationError as PydanticValidationError
from bson import ObjectId

from src.shared.standardization import VerificationBaseService
from src.shared.exceptions import NotFoundError, ValidationError, ConflictError
from src.shared.constants import (
    QUIZ_KINDS, QUIZ_STATES, QUESTION_TYPES, QUESTION_ACTIONS,
    DIFFICULTY_DIRECTIONS, REFINE_INTENTS, UNIDENTIFIED_CONCEPT
)
from src.shared.logging import log_info, log_warning, log_error
from src.shared.utils import utc_now, count_words
from src.llm.parsing import parse_structured, clean_text
from src.llm.services import get_generative_client
from src.classes.workflow import ClassWorkflow, WorkflowOperation, GuardEvaluator, TemporaryTopicBypass
from .models import (
    Quiz, Question, QuizDraft, QuestionDraft, QuestionEdits, ConceptMapDraft,
    normalize_options, resolve_correct_option, check_question_invariants, _TYPE_ALIASES
)
from .prompts import (
    KIND_PROFILES, QUIZ_SYSTEM_PROMPT, READING_SYSTEM_PROMPT, CONCEPTS_SYSTEM_PROMPT,
    build_quiz_prompt, build_modify_question_prompt, build_refine_reading_prompt, build_concepts_prompt
)

MODULE = "quizzes.services"

READING_MIN_WORDS = 150
READING_MAX_WORDS = 250

_GENERATE_OPERATIONS = {
    QUIZ_KINDS["PRE"]: WorkflowOperation.GENERATE_PRE_QUIZ,
    QUIZ_KINDS["POST"]: WorkflowOperation.GENERATE_POST_QUIZ,
}
_PUBLISH_OPERATIONS = {
    QUIZ_KINDS["PRE"]: WorkflowOperation.PUBLISH_PRE_QUIZ,
    QUIZ_KINDS["POST"]: WorkflowOperation.PUBLISH_POST_QUIZ,
}


class QuizService(VerificationBaseService):
    """
    Motor de evaluaciones: generación, edición por pregunta, regeneración y publicación.

    Las operaciones de edición solo se permiten mientras la evaluación no
    haya sido publicada.
    """

    def __init__(self, db=None, ai_client=None):
        super().__init__(collection_name="quizzes", db=db)
        self.workflow = ClassWorkflow(self.db)
        self.ai_client = ai_client or get_generative_client()

    def _questions(self, quiz_id) -> List[Dict]:
        return list(self.db.questions.find({"quiz_id": quiz_id}).sort("order", ASCENDING))

    def _request_draft(self, kind: str, topic: Dict, version: Optional[Dict], class_doc: Dict,
                       reading: Optional[str] = None) -> QuizDraft:
        profile = KIND_PROFILES[kind]
        result = self.ai_client.generate(
            QUIZ_SYSTEM_PROMPT,
            build_quiz_prompt(kind, topic, version, class_doc, reading=reading),
            temperature=profile["temperature"],
            max_tokens=profile["max_tokens"],
            json_output=True
        )
        return parse_structured(result.content, QuizDraft, QuizDraft(), MODULE)

    @staticmethod
    def _clamp(draft: QuizDraft, count: int) -> List[QuestionDraft]:
        """Recorta al número exacto de preguntas; falla si llegan menos de las necesarias"""
        usable = draft.usable_questions()
        if len(usable) < count:
            raise ValidationError(
                f"El servicio de generación devolvió {len(usable)} preguntas válidas de {count} requeridas",
                {"expected": count, "received": len(usable)}
            )
        if len(usable) > count:
            log_info(f"Se descartan {len(usable) - count} preguntas sobrantes", MODULE)
        return usable[:count]

    @staticmethod
    def _build_questions(quiz_id: ObjectId, drafts: List[QuestionDraft], reading: str) -> List[Dict]:
        return [
            Question(quiz_id=quiz_id, order=order, context_text=reading, **draft.question_fields()).to_dict()
            for order, draft in enumerate(drafts, start=1)
        ]

    def generate_quiz(self, teacher_id: str, class_id: str, kind: str) -> Dict[str, Any]:
        """
        Genera la evaluación pre o post de una clase a partir de su guía actual.

        Salvo en temas temporales, 'pre' exige guía aprobada y 'post' guía final.
        Si la generación falla no queda ninguna evaluación persistida y la
        clase vuelve a su estado anterior.
        """
        if kind not in QUIZ_KINDS.values():
            raise ValidationError(f"Tipo de evaluación inválido: {kind}")

        class_doc = self.get_owned_class(class_id, teacher_id)
        topic = self.get_topic(class_doc)
        version = self.get_current_guide_version(class_doc)
        GuardEvaluator(TemporaryTopicBypass.from_topic(topic)).check_quiz_generation(kind, version)

        if self.collection.find_one({"class_id": class_doc["_id"], "kind": kind}):
            raise ConflictError(f"La clase ya tiene una evaluación de tipo {kind}")

        previous_state = class_doc.get("state")
        self.workflow.advance(class_doc, _GENERATE_OPERATIONS[kind])
        try:
            quiz, questions = self._create_quiz(kind, topic, version, class_doc)
        except Exception:
            self.workflow.restore(class_doc, previous_state)
            raise

        return {
            "quiz_id": quiz["_id"],
            "reading": quiz["reading"] or None,
            "questions": questions,
            "time_limit": quiz["time_limit"],
            "kind": kind
        }

    def _create_quiz(self, kind: str, topic: Dict, version: Optional[Dict], class_doc: Dict) -> Tuple[Dict, List[Dict]]:
        profile = KIND_PROFILES[kind]
        draft = self._request_draft(kind, topic, version, class_doc)
        selected = self._clamp(draft, profile["question_count"])

        reading = draft.reading if profile["requires_reading"] else ""
        if profile["requires_reading"]:
            if not reading:
                raise ValidationError("El servicio de generación no devolvió la lectura de la evaluación diagnóstica")
            words = count_words(reading)
            if not READING_MIN_WORDS <= words <= READING_MAX_WORDS:
                log_warning(f"La lectura generada tiene {words} palabras", MODULE)

        quiz = Quiz(
            class_id=class_doc["_id"],
            kind=kind,
            title=f"{profile['title']}: {topic.get('name', 'Clase')}",
            time_limit=profile["time_limit"],
            reading=reading,
            instructions=profile["instructions"]
        ).to_dict()
        questions = self._build_questions(quiz["_id"], selected, reading)

        try:
            self.collection.insert_one(quiz)
        except DuplicateKeyError:
            raise ConflictError(f"La clase ya tiene una evaluación de tipo {kind}")
        try:
            self.db.questions.insert_many(questions)
        except PyMongoError:
            self.collection.delete_one({"_id": quiz["_id"]})
            raise

        log_info(f"Evaluación {kind} {quiz['_id']} creada con {len(questions)} preguntas", MODULE)
        return quiz, questions

    def get_quiz(self, teacher_id: str, quiz_id: str) -> Dict[str, Any]:
        quiz, _ = self.get_owned_quiz(quiz_id, teacher_id)
        return {**quiz, "questions": self._questions(quiz["_id"])}

    def edit_reading(self, teacher_id: str, quiz_id: str, new_text: str) -> Dict[str, Any]:
        """Sobrescribe la lectura de la evaluación y su copia en cada pregunta"""
        quiz, _ = self.get_owned_quiz(quiz_id, teacher_id)
        if quiz.get("kind") != QUIZ_KINDS["PRE"]:
            raise ValidationError("Solo la evaluación diagnóstica tiene lectura")
        GuardEvaluator.check_editable(quiz)
        text = (new_text or "").strip()
        if not text:
            raise ValidationError("La lectura no puede estar vacía")

        self.collection.update_one({"_id": quiz["_id"]}, {"$set": {"reading": text, "updated_at": utc_now()}})
        self.db.questions.update_many({"quiz_id": quiz["_id"]}, {"$set": {"context_text": text}})
        return {"quiz_id": quiz["_id"], "reading": text, "word_count": count_words(text)}

    def edit_question(self, teacher_id: str, question_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        """
        Sobrescribe campos de una pregunta.

        Las opciones conservan su id cuando se envían como {id, label}; la
        pregunta resultante se valida completa antes de guardarse.
        """
        if not ObjectId.is_valid(str(question_id)):
            raise NotFoundError("Pregunta no encontrada")
        question = self.db.questions.find_one({"_id": ObjectId(str(question_id))})
        if not question:
            raise NotFoundError("Pregunta no encontrada")
        try:
            quiz, _ = self.get_owned_quiz(question["quiz_id"], teacher_id)
        except NotFoundError:
            raise NotFoundError("Pregunta no encontrada")
        GuardEvaluator.check_editable(quiz)

        try:
            edits = QuestionEdits.model_validate(fields or {})
        except PydanticValidationError as e:
            raise ValidationError("Campos de pregunta inválidos", {"errors": e.errors(include_url=False, include_context=False)})

        updated = dict(question)
        if edits.prompt is not None:
            updated["prompt"] = edits.prompt.strip()
        if edits.feedback is not None:
            updated["feedback"] = edits.feedback
        if edits.cognitive_level is not None:
            updated["cognitive_level"] = edits.cognitive_level
        if edits.question_type is not None:
            question_type = _TYPE_ALIASES.get(edits.question_type.strip().lower())
            if question_type is None:
                raise ValidationError(f"Tipo de pregunta inválido: {edits.question_type}")
            updated["question_type"] = question_type
        if edits.options is not None:
            updated["options"] = normalize_options(edits.options, keep_ids=True)
        if updated.get("question_type") == QUESTION_TYPES["OPEN_RESPONSE"]:
            updated["options"] = []

        if edits.correct_index is not None:
            if not 0 <= edits.correct_index < len(updated.get("options") or []):
                raise ValidationError("correct_index fuera de rango")
            updated["correct_answer"] = resolve_correct_option(updated["options"], edits.correct_index)
        elif edits.correct_answer is not None:
            updated["correct_answer"] = edits.correct_answer

        check_question_invariants(updated)

        # Filas antiguas pueden no tener cognitive_level ni feedback
        changes = {key: updated.get(key) for key in
                   ("prompt", "question_type", "options", "correct_answer", "feedback", "cognitive_level")}
        changes["updated_at"] = utc_now()
        self.db.questions.update_one({"_id": question["_id"]}, {"$set": changes})
        updated.update(changes)
        return updated

    def regenerate_all_questions(self, teacher_id: str, quiz_id: str, class_id: Optional[str] = None) -> Dict[str, Any]:
        """Reemplaza todas las preguntas de una evaluación diagnóstica por tres nuevas"""
        quiz, class_doc = self.get_owned_quiz(quiz_id, teacher_id)
        if class_id is not None and str(class_doc["_id"]) != str(class_id):
            raise NotFoundError("Evaluación no encontrada")
        if quiz.get("kind") != QUIZ_KINDS["PRE"]:
            raise ValidationError("Solo se pueden regenerar las preguntas de la evaluación diagnóstica")
        GuardEvaluator.check_editable(quiz)

        topic = self.get_topic(class_doc)
        version = self.get_current_guide_version(class_doc)
        draft = self._request_draft(QUIZ_KINDS["PRE"], topic, version, class_doc, reading=quiz.get("reading") or None)
        selected = self._clamp(draft, KIND_PROFILES[QUIZ_KINDS["PRE"]]["question_count"])

        reading = quiz.get("reading") or draft.reading
        if reading != quiz.get("reading"):
            self.collection.update_one({"_id": quiz["_id"]}, {"$set": {"reading": reading}})
        questions = self._build_questions(quiz["_id"], selected, reading)

        self.db.questions.delete_many({"quiz_id": quiz["_id"]})
        self.db.questions.insert_many(questions)
        log_info(f"Preguntas de la evaluación {quiz['_id']} regeneradas", MODULE)
        return {"quiz_id": quiz["_id"], "questions": questions}

    def modify_single_question(self, teacher_id: str, quiz_id: str, question_id: str,
                               action: str, difficulty: Optional[str] = None) -> Dict[str, Any]:
        """
        Reemplaza (swap) o ajusta la dificultad (adjust_difficulty) de una pregunta.

        El enunciado, las opciones y la respuesta correcta se regeneran por
        completo; el id de la pregunta y su evaluación no cambian.
        """
        if action not in QUESTION_ACTIONS.values():
            raise ValidationError(f"Acción inválida: {action}")
        if action == QUESTION_ACTIONS["ADJUST_DIFFICULTY"] and difficulty not in DIFFICULTY_DIRECTIONS:
            raise ValidationError("difficulty debe ser 'easier' o 'harder' para ajustar la dificultad")

        quiz, class_doc = self.get_owned_quiz(quiz_id, teacher_id)
        if not ObjectId.is_valid(str(question_id)):
            raise NotFoundError("Pregunta no encontrada")
        question = self.db.questions.find_one({"_id": ObjectId(str(question_id)), "quiz_id": quiz["_id"]})
        if not question:
            raise NotFoundError("Pregunta no encontrada")
        GuardEvaluator.check_editable(quiz)

        topic = self.get_topic(class_doc)
        result = self.ai_client.generate(
            QUIZ_SYSTEM_PROMPT,
            build_modify_question_prompt(question, action, difficulty, topic, quiz.get("reading", "")),
            temperature=0.7,
            max_tokens=1200,
            json_output=True
        )
        draft = parse_structured(result.content, QuestionDraft, QuestionDraft(), MODULE)
        if not draft.is_usable():
            raise ValidationError("El servicio de generación no devolvió una pregunta válida")

        changes = draft.question_fields()
        changes["concept"] = None
        changes["updated_at"] = utc_now()
        check_question_invariants(changes)
        self.db.questions.update_one({"_id": question["_id"]}, {"$set": changes})

        log_info(f"Pregunta {question['_id']} modificada ({action})", MODULE)
        return {"updated_question": {**question, **changes}}

    def publish_quiz(self, teacher_id: str, quiz_id: str) -> Dict[str, Any]:
        """
        Publica la evaluación. Una segunda publicación falla con conflicto y
        la fecha de envío original no cambia.
        """
        quiz, class_doc = self.get_owned_quiz(quiz_id, teacher_id)
        GuardEvaluator.check_publish(quiz)
        if self.db.questions.count_documents({"quiz_id": quiz["_id"]}) == 0:
            raise ValidationError("La evaluación no tiene preguntas")

        operation = _PUBLISH_OPERATIONS[quiz["kind"]]
        self.workflow.ensure_transition(class_doc, operation)

        sent_at = utc_now()
        result = self.collection.update_one(
            {"_id": quiz["_id"], "state": {"$in": [QUIZ_STATES["DRAFT"], QUIZ_STATES["APPROVED"]]}},
            {"$set": {"state": QUIZ_STATES["PUBLISHED"], "sent_at": sent_at}}
        )
        if result.matched_count == 0:
            raise ConflictError("La evaluación ya fue publicada")

        try:
            self.workflow.advance(class_doc, operation)
        except ConflictError:
            # La clase cambió de estado entretanto; la evaluación vuelve a su estado previo
            self.collection.update_one(
                {"_id": quiz["_id"], "state": QUIZ_STATES["PUBLISHED"]},
                {"$set": {"state": quiz["state"], "sent_at": quiz.get("sent_at")}}
            )
            log_warning(f"Publicación de la evaluación {quiz['_id']} revertida", MODULE)
            raise

        log_info(f"Evaluación {quiz['kind']} {quiz['_id']} publicada", MODULE)
        return {
            "quiz_id": quiz["_id"],
            "sent_at": sent_at,
            "class_state": class_doc["state"],
            "kind": quiz["kind"]
        }

    def refine_reading(self, teacher_id: str, quiz_id: str, current_text: Optional[str],
                       intent: str, instruction: Optional[str] = None) -> Dict[str, Any]:
        """
        Reescribe la lectura de la evaluación diagnóstica con el servicio de generación.

        Si la actualización de las preguntas falla, la evaluación recupera su texto anterior.
        """
        if intent not in REFINE_INTENTS:
            raise ValidationError(f"Intención inválida: {intent}")
        if intent == "custom" and not (instruction or "").strip():
            raise ValidationError("Se requiere una instrucción para el ajuste personalizado")

        quiz, class_doc = self.get_owned_quiz(quiz_id, teacher_id)
        if quiz.get("kind") != QUIZ_KINDS["PRE"]:
            raise ValidationError("Solo la evaluación diagnóstica tiene lectura")
        GuardEvaluator.check_editable(quiz)

        result = self.ai_client.generate(
            READING_SYSTEM_PROMPT,
            build_refine_reading_prompt(self.get_topic(class_doc), current_text or quiz.get("reading", ""),
                                        intent, instruction),
            temperature=0.7,
            max_tokens=1200
        )
        text = clean_text(result.content)
        if not text:
            raise ValidationError("El servicio de generación devolvió un texto vacío")

        previous = quiz.get("reading", "")
        self.collection.update_one({"_id": quiz["_id"]}, {"$set": {"reading": text}})
        try:
            self.db.questions.update_many({"quiz_id": quiz["_id"]}, {"$set": {"context_text": text}})
        except PyMongoError as e:
            log_error("No se pudo actualizar la lectura en las preguntas; se revierte", e, MODULE)
            self.collection.update_one({"_id": quiz["_id"]}, {"$set": {"reading": previous}})
            raise

        return {"quiz_id": quiz["_id"], "reading": text, "word_count": count_words(text)}

    def identify_concepts(self, teacher_id: str, quiz_id: str) -> Dict[str, Any]:
        """Asocia a cada pregunta el concepto principal que evalúa"""
        quiz, class_doc = self.get_owned_quiz(quiz_id, teacher_id)
        questions = self._questions(quiz["_id"])
        if not questions:
            raise ValidationError("La evaluación no tiene preguntas")

        result = self.ai_client.generate(
            CONCEPTS_SYSTEM_PROMPT,
            build_concepts_prompt(self.get_topic(class_doc), questions),
            temperature=0.3,
            max_tokens=800,
            json_output=True
        )
        draft = parse_structured(result.content, ConceptMapDraft, ConceptMapDraft(), MODULE)
        found = {c.question_id: c.concept for c in draft.concepts if c.concept}

        concepts = []
        for question in questions:
            concept = found.get(str(question["_id"])) or UNIDENTIFIED_CONCEPT
            self.db.questions.update_one({"_id": question["_id"]}, {"$set": {"concept": concept}})
            concepts.append({"question_id": question["_id"], "concept": concept})
        return {"quiz_id": quiz["_id"], "concepts": concepts}
