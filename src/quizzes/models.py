import uuid
from bson import ObjectId
from datetime import datetime
from typing import Dict, Any, Optional, List
from pydantic import BaseModel, Field, field_validator, model_validator

from src.shared.constants import QUIZ_STATES, QUESTION_TYPES, MIN_MULTIPLE_CHOICE_OPTIONS
from src.shared.exceptions import ValidationError
from src.shared.utils import utc_now

_TYPE_ALIASES = {
    "multiple_choice": QUESTION_TYPES["MULTIPLE_CHOICE"],
    "opcion_multiple": QUESTION_TYPES["MULTIPLE_CHOICE"],
    "multiple": QUESTION_TYPES["MULTIPLE_CHOICE"],
    "open_response": QUESTION_TYPES["OPEN_RESPONSE"],
    "texto_abierto": QUESTION_TYPES["OPEN_RESPONSE"],
    "open": QUESTION_TYPES["OPEN_RESPONSE"],
    "abierta": QUESTION_TYPES["OPEN_RESPONSE"],
}


def new_option_id() -> str:
    return f"option-{uuid.uuid4().hex[:8]}"


def normalize_options(raw_options, keep_ids: bool = False) -> List[Dict[str, str]]:
    """
    Convierte una lista de opciones en pares {id, label}.

    Con keep_ids se conservan los identificadores recibidos que no estén
    repetidos, de modo que sobreviven a una edición. Las opciones sin texto se
    descartan.
    """
    options, seen = [], set()
    for item in raw_options or []:
        option_id = None
        if isinstance(item, dict):
            label = item.get("label") or item.get("text") or ""
            if keep_ids:
                option_id = item.get("id")
        else:
            label = item
        label = "" if label is None else str(label).strip()
        if not label:
            continue
        if not option_id or option_id in seen:
            option_id = new_option_id()
        seen.add(option_id)
        options.append({"id": str(option_id), "label": label})
    return options


def resolve_correct_option(options: List[Dict[str, str]], index: Optional[int] = None,
                           answer_text: Optional[str] = None) -> Optional[str]:
    """Id de la opción correcta según el índice reportado; si no es válido se usa la primera"""
    if not options:
        return None
    if isinstance(index, int) and 0 <= index < len(options):
        return options[index]["id"]
    if answer_text:
        wanted = answer_text.strip().lower()
        for option in options:
            if option["label"].lower() == wanted:
                return option["id"]
    return options[0]["id"]


def check_question_invariants(question: Dict[str, Any]) -> None:
    """
    Raises:
        ValidationError: Si la pregunta no cumple las reglas de su tipo
    """
    options = question.get("options") or []
    if question.get("question_type") == QUESTION_TYPES["MULTIPLE_CHOICE"]:
        ids = [o.get("id") for o in options]
        if len(options) < MIN_MULTIPLE_CHOICE_OPTIONS:
            raise ValidationError(
                f"Una pregunta de opción múltiple requiere al menos {MIN_MULTIPLE_CHOICE_OPTIONS} opciones"
            )
        if len(set(ids)) != len(ids):
            raise ValidationError("Las opciones de la pregunta tienen identificadores repetidos")
        if ids.count(question.get("correct_answer")) != 1:
            raise ValidationError("La respuesta correcta debe coincidir con exactamente una opción")
    elif question.get("question_type") == QUESTION_TYPES["OPEN_RESPONSE"]:
        if options:
            raise ValidationError("Una pregunta de respuesta abierta no admite opciones")
    else:
        raise ValidationError(f"Tipo de pregunta inválido: {question.get('question_type')}")
    if not (question.get("prompt") or "").strip():
        raise ValidationError("El enunciado de la pregunta no puede estar vacío")


class QuestionDraft(BaseModel):
    """Pregunta devuelta por el servicio de generación"""
    prompt: str = ""
    question_type: str = ""
    cognitive_level: str = ""
    options: List[str] = Field(default_factory=list)
    correct_index: Optional[int] = None
    expected_answer: str = ""
    feedback: str = ""

    @field_validator("prompt", "question_type", "cognitive_level", "expected_answer", "feedback", mode="before")
    @classmethod
    def as_text(cls, value):
        return "" if value is None else str(value).strip()

    @field_validator("options", mode="before")
    @classmethod
    def option_labels(cls, value):
        if not isinstance(value, list):
            return []
        labels = []
        for item in value:
            if isinstance(item, dict):
                item = item.get("label") or item.get("text")
            if item is not None and str(item).strip():
                labels.append(str(item).strip())
        return labels

    @field_validator("correct_index", mode="before")
    @classmethod
    def index_or_none(cls, value):
        try:
            return int(value)
        except (TypeError, ValueError):
            return None

    @model_validator(mode="after")
    def infer_type(self):
        kind = _TYPE_ALIASES.get(self.question_type.strip().lower())
        if kind is None:
            kind = QUESTION_TYPES["MULTIPLE_CHOICE"] if self.options else QUESTION_TYPES["OPEN_RESPONSE"]
        self.question_type = kind
        if kind == QUESTION_TYPES["OPEN_RESPONSE"]:
            self.options = []
        return self

    def is_usable(self) -> bool:
        if not self.prompt:
            return False
        if self.question_type == QUESTION_TYPES["MULTIPLE_CHOICE"]:
            return len(self.options) >= MIN_MULTIPLE_CHOICE_OPTIONS
        return True

    def question_fields(self) -> Dict[str, Any]:
        """Campos persistibles con opciones normalizadas e id de respuesta resuelto"""
        options = normalize_options(self.options)
        if self.question_type == QUESTION_TYPES["MULTIPLE_CHOICE"]:
            correct = resolve_correct_option(options, self.correct_index, self.expected_answer)
        else:
            correct = self.expected_answer
        return {
            "prompt": self.prompt,
            "question_type": self.question_type,
            "cognitive_level": self.cognitive_level,
            "options": options,
            "correct_answer": correct,
            "feedback": self.feedback,
        }


class QuizDraft(BaseModel):
    reading: str = ""
    questions: List[QuestionDraft] = Field(default_factory=list)

    @field_validator("reading", mode="before")
    @classmethod
    def reading_text(cls, value):
        return "" if value is None else str(value).strip()

    @field_validator("questions", mode="before")
    @classmethod
    def only_objects(cls, value):
        if not isinstance(value, list):
            return []
        return [item for item in value if isinstance(item, dict)]

    def usable_questions(self) -> List[QuestionDraft]:
        return [q for q in self.questions if q.is_usable()]


class ConceptDraft(BaseModel):
    question_id: str = ""
    concept: str = ""

    @field_validator("question_id", "concept", mode="before")
    @classmethod
    def as_text(cls, value):
        return "" if value is None else str(value).strip()


class ConceptMapDraft(BaseModel):
    concepts: List[ConceptDraft] = Field(default_factory=list)

    @field_validator("concepts", mode="before")
    @classmethod
    def only_objects(cls, value):
        if not isinstance(value, list):
            return []
        return [item for item in value if isinstance(item, dict)]


class QuestionEdits(BaseModel):
    """Sobrescritura directa de campos de una pregunta"""
    prompt: Optional[str] = None
    question_type: Optional[str] = None
    options: Optional[List[Any]] = None
    correct_answer: Optional[str] = None
    correct_index: Optional[int] = None
    feedback: Optional[str] = None
    cognitive_level: Optional[str] = None


class Quiz:
    """
    Evaluación diagnóstica (pre) o final (post) de una clase.
    Solo puede existir una por clase y tipo.
    """
    def __init__(
        self,
        class_id: ObjectId,
        kind: str,
        title: str,
        time_limit: int,
        reading: str = "",
        instructions: str = "",
        state: str = QUIZ_STATES["DRAFT"],
        created_at: Optional[datetime] = None,
        _id: Optional[ObjectId] = None
    ):
        self._id = _id or ObjectId()
        self.class_id = class_id
        self.kind = kind
        self.title = title
        self.time_limit = time_limit
        self.reading = reading
        self.instructions = instructions
        self.state = state
        self.created_at = created_at or utc_now()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "_id": self._id,
            "class_id": self.class_id,
            "kind": self.kind,
            "title": self.title,
            "time_limit": self.time_limit,
            "reading": self.reading,
            "instructions": self.instructions,
            "state": self.state,
            "sent_at": None,
            "created_at": self.created_at
        }


class Question:
    """Pregunta de una evaluación con opciones de id estable"""
    def __init__(
        self,
        quiz_id: ObjectId,
        order: int,
        prompt: str,
        question_type: str,
        options: List[Dict[str, str]],
        correct_answer: Optional[str],
        feedback: str = "",
        cognitive_level: str = "",
        context_text: str = "",
        _id: Optional[ObjectId] = None
    ):
        self._id = _id or ObjectId()
        self.quiz_id = quiz_id
        self.order = order
        self.prompt = prompt
        self.question_type = question_type
        self.options = options
        self.correct_answer = correct_answer
        self.feedback = feedback
        self.cognitive_level = cognitive_level
        self.context_text = context_text

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "_id": self._id,
            "quiz_id": self.quiz_id,
            "order": self.order,
            "prompt": self.prompt,
            "question_type": self.question_type,
            "options": self.options,
            "correct_answer": self.correct_answer,
            "feedback": self.feedback,
            "cognitive_level": self.cognitive_level,
            "context_text": self.context_text,
            "concept": None,
            "created_at": utc_now()
        }
        check_question_invariants(data)
        return data
