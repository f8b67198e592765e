"""
Máquina de estados de una clase.

Todas las operaciones que cambian el estado de una clase pasan por la tabla
TRANSITIONS y por ClassWorkflow.advance. El cambio se persiste con una
comparación sobre el estado leído, de modo que dos solicitudes simultáneas no
pueden avanzar la misma clase desde el mismo estado.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Optional

from src.shared.constants import QUIZ_KINDS, QUIZ_STATES, GUIDE_VERSION_STATES
from src.shared.exceptions import ConflictError, ValidationError
from src.shared.logging import log_info, log_warning
from src.shared.utils import utc_now

MODULE = "classes.workflow"


class ClassState(Enum):
    DRAFT = "draft"
    GUIDE_GENERATING = "guide_generating"
    GUIDE_EDITING = "guide_editing"
    GUIDE_APPROVED = "guide_approved"
    PRE_QUIZ_GENERATING = "pre_quiz_generating"
    PRE_QUIZ_SENT = "pre_quiz_sent"
    ANALYZING_PRE_QUIZ = "analyzing_pre_quiz"
    MODIFYING_GUIDE = "modifying_guide"
    FINAL_GUIDE = "final_guide"
    POST_QUIZ_GENERATING = "post_quiz_generating"
    POST_QUIZ_SENT = "post_quiz_sent"
    ANALYZING_RESULTS = "analyzing_results"
    COMPLETED = "completed"
    # Estados administrativos
    SCHEDULED = "scheduled"
    IN_SESSION = "in_session"
    PREPARED = "prepared"
    CANCELLED = "cancelled"

    @classmethod
    def parse(cls, value) -> "ClassState":
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise ValidationError(f"Estado de clase desconocido: {value}")


class WorkflowOperation(Enum):
    GENERATE_GUIDE = "generate_guide"
    COMPLETE_GUIDE_GENERATION = "complete_guide_generation"
    APPROVE_GUIDE = "approve_guide"
    APPROVE_REMEDIATED_GUIDE = "approve_remediated_guide"
    GENERATE_PRE_QUIZ = "generate_pre_quiz"
    PUBLISH_PRE_QUIZ = "publish_pre_quiz"
    PROCESS_PRE_QUIZ = "process_pre_quiz"
    APPLY_RECOMMENDATIONS = "apply_recommendations"
    FINALIZE_GUIDE = "finalize_guide"
    GENERATE_POST_QUIZ = "generate_post_quiz"
    PUBLISH_POST_QUIZ = "publish_post_quiz"
    GENERATE_FEEDBACK = "generate_feedback"
    VALIDATE_CLASS = "validate_class"
    COMPLETE_CLASS = "complete_class"


@dataclass(frozen=True)
class Transition:
    sources: FrozenSet[ClassState]
    target: ClassState


S = ClassState

_PREPARATION = frozenset({S.DRAFT, S.SCHEDULED, S.GUIDE_GENERATING, S.GUIDE_EDITING,
                          S.GUIDE_APPROVED, S.PRE_QUIZ_GENERATING})
_REMEDIATION = frozenset({S.PRE_QUIZ_SENT, S.ANALYZING_PRE_QUIZ, S.MODIFYING_GUIDE, S.IN_SESSION})
_CLOSED = frozenset({S.POST_QUIZ_SENT, S.ANALYZING_RESULTS, S.COMPLETED, S.CANCELLED})

TRANSITIONS: Dict[WorkflowOperation, Transition] = {
    WorkflowOperation.GENERATE_GUIDE: Transition(_PREPARATION, S.GUIDE_GENERATING),
    WorkflowOperation.COMPLETE_GUIDE_GENERATION: Transition(frozenset({S.GUIDE_GENERATING}), S.GUIDE_EDITING),
    WorkflowOperation.APPROVE_GUIDE: Transition(
        frozenset({S.GUIDE_EDITING, S.GUIDE_APPROVED, S.PRE_QUIZ_GENERATING}), S.GUIDE_APPROVED
    ),
    # Aprobar una versión remediada no saca a la clase del ciclo de remediación
    WorkflowOperation.APPROVE_REMEDIATED_GUIDE: Transition(frozenset({S.MODIFYING_GUIDE}), S.MODIFYING_GUIDE),
    # Las clases de tema temporal pueden llegar aquí sin guía aprobada
    WorkflowOperation.GENERATE_PRE_QUIZ: Transition(
        frozenset({S.DRAFT, S.SCHEDULED, S.GUIDE_EDITING, S.GUIDE_APPROVED, S.PRE_QUIZ_GENERATING}),
        S.PRE_QUIZ_GENERATING
    ),
    WorkflowOperation.PUBLISH_PRE_QUIZ: Transition(
        frozenset({S.SCHEDULED, S.GUIDE_EDITING, S.GUIDE_APPROVED, S.PRE_QUIZ_GENERATING}), S.PRE_QUIZ_SENT
    ),
    WorkflowOperation.PROCESS_PRE_QUIZ: Transition(_REMEDIATION, S.ANALYZING_PRE_QUIZ),
    WorkflowOperation.APPLY_RECOMMENDATIONS: Transition(_REMEDIATION, S.MODIFYING_GUIDE),
    WorkflowOperation.FINALIZE_GUIDE: Transition(_REMEDIATION | {S.FINAL_GUIDE}, S.FINAL_GUIDE),
    WorkflowOperation.GENERATE_POST_QUIZ: Transition(
        frozenset(s for s in ClassState if s not in _CLOSED), S.POST_QUIZ_GENERATING
    ),
    WorkflowOperation.PUBLISH_POST_QUIZ: Transition(
        frozenset({S.FINAL_GUIDE, S.POST_QUIZ_GENERATING, S.PREPARED, S.IN_SESSION}), S.POST_QUIZ_SENT
    ),
    WorkflowOperation.GENERATE_FEEDBACK: Transition(
        frozenset({S.POST_QUIZ_SENT, S.ANALYZING_RESULTS}), S.ANALYZING_RESULTS
    ),
    WorkflowOperation.VALIDATE_CLASS: Transition(
        frozenset({S.FINAL_GUIDE, S.POST_QUIZ_GENERATING, S.PREPARED}), S.PREPARED
    ),
    WorkflowOperation.COMPLETE_CLASS: Transition(frozenset({S.ANALYZING_RESULTS}), S.COMPLETED),
}

del S


def can_transition(from_state, to_state, operation: WorkflowOperation) -> bool:
    """
    Indica si la operación puede llevar una clase de from_state a to_state.

    Es el único punto donde se decide la legalidad de un cambio de estado.
    """
    transition = TRANSITIONS.get(operation)
    if transition is None:
        return False
    try:
        source = ClassState.parse(from_state)
        target = ClassState.parse(to_state)
    except ValidationError:
        return False
    return source in transition.sources and target == transition.target


def target_state(operation: WorkflowOperation) -> ClassState:
    return TRANSITIONS[operation].target


def approval_operation(state) -> WorkflowOperation:
    """Operación de aprobación que corresponde al estado actual de la clase"""
    if state in (ClassState.MODIFYING_GUIDE, ClassState.MODIFYING_GUIDE.value):
        return WorkflowOperation.APPROVE_REMEDIATED_GUIDE
    return WorkflowOperation.APPROVE_GUIDE


class TemporaryTopicBypass:
    """
    Capacidad explícita que exime a una clase de las guardas de guía.

    Se habilita solo para temas extraordinarios o temporales. Cada uso queda
    registrado para poder auditar qué clases generaron evaluaciones sin guía
    aprobada o final.
    """

    def __init__(self, enabled: bool, topic_id=None):
        self.enabled = bool(enabled)
        self.topic_id = topic_id

    @classmethod
    def from_topic(cls, topic: Optional[Dict]) -> "TemporaryTopicBypass":
        topic = topic or {}
        return cls(topic.get("is_temporary", False), topic.get("_id"))

    @classmethod
    def disabled(cls) -> "TemporaryTopicBypass":
        return cls(False)

    def __bool__(self):
        return self.enabled


class GuardEvaluator:
    """Evalúa las precondiciones de dominio previas a un cambio de estado"""

    def __init__(self, bypass: TemporaryTopicBypass = None):
        self.bypass = bypass or TemporaryTopicBypass.disabled()

    def check_quiz_generation(self, kind: str, guide_version: Optional[Dict]) -> None:
        """
        Raises:
            ValidationError: Si la guía actual no habilita la evaluación pedida
        """
        if kind not in QUIZ_KINDS.values():
            raise ValidationError(f"Tipo de evaluación inválido: {kind}")

        if self.bypass:
            log_info(f"Guarda de guía omitida para evaluación {kind} (tema temporal {self.bypass.topic_id})", MODULE)
            return

        version = guide_version or {}
        if kind == QUIZ_KINDS["PRE"]:
            if version.get("state") not in (GUIDE_VERSION_STATES["APPROVED"], GUIDE_VERSION_STATES["FINAL"]):
                raise ValidationError(
                    "La guía debe estar aprobada antes de generar la evaluación diagnóstica",
                    {"guide_state": version.get("state")}
                )
        elif not version.get("is_final", False):
            raise ValidationError(
                "La guía debe ser la versión final antes de generar la evaluación final",
                {"guide_state": version.get("state")}
            )

    @staticmethod
    def check_publish(quiz: Dict) -> None:
        state = quiz.get("state")
        if state == QUIZ_STATES["PUBLISHED"]:
            raise ConflictError("La evaluación ya fue publicada", {"sent_at": quiz.get("sent_at")})
        if state not in (QUIZ_STATES["DRAFT"], QUIZ_STATES["APPROVED"]):
            raise ConflictError(f"No se puede publicar una evaluación en estado {state}")

    @staticmethod
    def check_editable(quiz: Dict) -> None:
        if quiz.get("state") not in (QUIZ_STATES["DRAFT"], QUIZ_STATES["APPROVED"]):
            raise ConflictError("La evaluación ya fue publicada y no puede modificarse")


class ClassWorkflow:
    """Persiste los cambios de estado de una clase validados contra TRANSITIONS"""

    def __init__(self, db):
        self.db = db

    def ensure_transition(self, class_doc: Dict, operation: WorkflowOperation) -> ClassState:
        """
        Verifica que la operación sea legal desde el estado actual de la clase.

        Returns:
            El estado destino

        Raises:
            ConflictError: Si la transición no está permitida
        """
        current = class_doc.get("state") or ClassState.DRAFT.value
        target = target_state(operation)
        if not can_transition(current, target, operation):
            raise ConflictError(
                f"La operación {operation.value} no está permitida en el estado {current}",
                {"state": current, "operation": operation.value}
            )
        return target

    def advance(self, class_doc: Dict, operation: WorkflowOperation, extra_fields: Dict = None) -> ClassState:
        """
        Avanza la clase al estado destino de la operación.

        El documento recibido se actualiza en memoria con los campos escritos.

        Raises:
            ConflictError: Si la transición no está permitida o el estado cambió entretanto
        """
        current = class_doc.get("state") or ClassState.DRAFT.value
        target = self.ensure_transition(class_doc, operation)

        changes = dict(extra_fields or {})
        changes["state"] = target.value
        changes["updated_at"] = utc_now()

        query = {"_id": class_doc["_id"]}
        query["state"] = class_doc["state"] if "state" in class_doc else None
        result = self.db.classes.update_one(query, {"$set": changes})
        if result.matched_count == 0:
            log_warning(f"Clase {class_doc['_id']} cambió de estado durante {operation.value}", MODULE)
            raise ConflictError("La clase fue modificada por otra operación; vuelve a intentarlo")

        class_doc.update(changes)
        log_info(f"Clase {class_doc['_id']}: {current} -> {target.value} ({operation.value})", MODULE)
        return target

    def restore(self, class_doc: Dict, previous_state: str) -> None:
        """Devuelve la clase a su estado previo tras una generación fallida"""
        self.db.classes.update_one(
            {"_id": class_doc["_id"]},
            {"$set": {"state": previous_state, "updated_at": utc_now()}}
        )
        log_warning(f"Clase {class_doc['_id']} restaurada al estado {previous_state}", MODULE)
        class_doc["state"] = previous_state
