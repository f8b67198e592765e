import unittest
from unittest.mock import patch
from bson import ObjectId

from src.classes.workflow import (
    ClassState, WorkflowOperation, ClassWorkflow, GuardEvaluator,
    TemporaryTopicBypass, can_transition, target_state, approval_operation
)
from src.shared.exceptions import ConflictError, ValidationError
from src.tests.fakes import FakeDatabase, seed_class


class TestTransitionTable(unittest.TestCase):
    """Pruebas de la tabla central de transiciones"""

    def test_nominal_path_is_allowed(self):
        path = [
            ("draft", WorkflowOperation.GENERATE_GUIDE),
            ("guide_generating", WorkflowOperation.COMPLETE_GUIDE_GENERATION),
            ("guide_editing", WorkflowOperation.APPROVE_GUIDE),
            ("guide_approved", WorkflowOperation.GENERATE_PRE_QUIZ),
            ("pre_quiz_generating", WorkflowOperation.PUBLISH_PRE_QUIZ),
            ("pre_quiz_sent", WorkflowOperation.PROCESS_PRE_QUIZ),
            ("analyzing_pre_quiz", WorkflowOperation.APPLY_RECOMMENDATIONS),
            ("modifying_guide", WorkflowOperation.FINALIZE_GUIDE),
            ("final_guide", WorkflowOperation.GENERATE_POST_QUIZ),
            ("post_quiz_generating", WorkflowOperation.PUBLISH_POST_QUIZ),
            ("post_quiz_sent", WorkflowOperation.GENERATE_FEEDBACK),
            ("analyzing_results", WorkflowOperation.COMPLETE_CLASS),
        ]
        for state, operation in path:
            with self.subTest(state=state, operation=operation):
                self.assertTrue(can_transition(state, target_state(operation), operation))

    def test_rejects_wrong_target(self):
        self.assertFalse(can_transition("draft", "guide_editing", WorkflowOperation.GENERATE_GUIDE))

    def test_rejects_unknown_state(self):
        self.assertFalse(can_transition("inexistente", "guide_generating", WorkflowOperation.GENERATE_GUIDE))

    def test_guide_generation_is_not_allowed_after_publishing_pre_quiz(self):
        self.assertFalse(can_transition("pre_quiz_sent", "guide_generating", WorkflowOperation.GENERATE_GUIDE))

    def test_remediation_and_feedback_are_reentrant(self):
        self.assertTrue(can_transition("analyzing_pre_quiz", "analyzing_pre_quiz", WorkflowOperation.PROCESS_PRE_QUIZ))
        self.assertTrue(can_transition("modifying_guide", "modifying_guide", WorkflowOperation.APPLY_RECOMMENDATIONS))
        self.assertTrue(can_transition("analyzing_results", "analyzing_results", WorkflowOperation.GENERATE_FEEDBACK))

    def test_completion_only_from_results_analysis(self):
        for state in ClassState:
            expected = state == ClassState.ANALYZING_RESULTS
            self.assertEqual(can_transition(state, "completed", WorkflowOperation.COMPLETE_CLASS), expected)

    def test_remediated_approval_stays_in_remediation(self):
        self.assertFalse(can_transition("modifying_guide", "guide_approved", WorkflowOperation.APPROVE_GUIDE))
        self.assertTrue(can_transition(
            "modifying_guide", "modifying_guide", WorkflowOperation.APPROVE_REMEDIATED_GUIDE
        ))
        self.assertEqual(approval_operation("modifying_guide"), WorkflowOperation.APPROVE_REMEDIATED_GUIDE)
        self.assertEqual(approval_operation("guide_editing"), WorkflowOperation.APPROVE_GUIDE)

    def test_remediation_states_can_finalize_guide(self):
        # Desde cualquier punto del ciclo de remediación la guía puede finalizarse
        for state in ("pre_quiz_sent", "analyzing_pre_quiz", "modifying_guide"):
            with self.subTest(state=state):
                self.assertTrue(can_transition(state, "final_guide", WorkflowOperation.FINALIZE_GUIDE))

    def test_no_operation_enters_scheduled_or_in_session(self):
        targets = {target_state(op) for op in WorkflowOperation}
        self.assertNotIn(ClassState.SCHEDULED, targets)
        self.assertNotIn(ClassState.IN_SESSION, targets)

    def test_parse_unknown_state_raises_validation_error(self):
        with self.assertRaises(ValidationError):
            ClassState.parse("otro")


class TestClassWorkflow(unittest.TestCase):
    """Pruebas de persistencia de estados"""

    def setUp(self):
        self.db = FakeDatabase()
        self.ids = seed_class(self.db, state="guide_editing")
        self.workflow = ClassWorkflow(self.db)

    def _class(self):
        return self.db.classes.find_one({"_id": self.ids["class_id"]})

    def test_advance_persists_state_and_extra_fields(self):
        class_doc = self._class()
        version_id = ObjectId()
        target = self.workflow.advance(class_doc, WorkflowOperation.APPROVE_GUIDE,
                                       {"current_guide_version_id": version_id})

        self.assertEqual(target, ClassState.GUIDE_APPROVED)
        stored = self._class()
        self.assertEqual(stored["state"], "guide_approved")
        self.assertEqual(stored["current_guide_version_id"], version_id)
        self.assertEqual(class_doc["state"], "guide_approved")

    def test_illegal_transition_raises_conflict(self):
        with self.assertRaises(ConflictError):
            self.workflow.advance(self._class(), WorkflowOperation.GENERATE_FEEDBACK)
        self.assertEqual(self._class()["state"], "guide_editing")

    def test_stale_state_raises_conflict(self):
        stale = self._class()
        self.db.classes.update_one({"_id": self.ids["class_id"]}, {"$set": {"state": "guide_approved"}})

        with self.assertRaises(ConflictError):
            self.workflow.advance(stale, WorkflowOperation.APPROVE_GUIDE)

    def test_restore_sets_previous_state(self):
        class_doc = self._class()
        self.workflow.advance(class_doc, WorkflowOperation.GENERATE_GUIDE)
        self.workflow.restore(class_doc, "guide_editing")
        self.assertEqual(self._class()["state"], "guide_editing")


class TestGuardEvaluator(unittest.TestCase):
    """Pruebas de las guardas de generación de evaluaciones"""

    def test_pre_requires_approved_guide(self):
        with self.assertRaises(ValidationError) as ctx:
            GuardEvaluator().check_quiz_generation("pre", {"state": "draft", "is_final": False})
        self.assertIn("aprobada", ctx.exception.message)

    def test_pre_accepts_approved_or_final_guide(self):
        GuardEvaluator().check_quiz_generation("pre", {"state": "approved", "is_final": False})
        GuardEvaluator().check_quiz_generation("pre", {"state": "final", "is_final": True})

    def test_post_requires_final_guide(self):
        with self.assertRaises(ValidationError):
            GuardEvaluator().check_quiz_generation("post", {"state": "approved", "is_final": False})
        GuardEvaluator().check_quiz_generation("post", {"state": "final", "is_final": True})

    def test_missing_guide_fails_without_bypass(self):
        with self.assertRaises(ValidationError):
            GuardEvaluator().check_quiz_generation("pre", None)

    @patch("src.classes.workflow.log_info")
    def test_temporary_topic_bypass_skips_guards_and_is_logged(self, mock_log_info):
        guard = GuardEvaluator(TemporaryTopicBypass.from_topic({"_id": ObjectId(), "is_temporary": True}))
        guard.check_quiz_generation("pre", None)
        guard.check_quiz_generation("post", {"state": "draft", "is_final": False})
        self.assertEqual(mock_log_info.call_count, 2)

    def test_bypass_does_not_accept_invalid_kind(self):
        guard = GuardEvaluator(TemporaryTopicBypass(True))
        with self.assertRaises(ValidationError):
            guard.check_quiz_generation("intermedia", None)

    def test_regular_topic_has_no_bypass(self):
        self.assertFalse(TemporaryTopicBypass.from_topic({"is_temporary": False}))
        self.assertFalse(TemporaryTopicBypass.from_topic(None))

    def test_publish_twice_is_a_conflict(self):
        GuardEvaluator.check_publish({"state": "draft"})
        with self.assertRaises(ConflictError):
            GuardEvaluator.check_publish({"state": "published"})
        with self.assertRaises(ConflictError):
            GuardEvaluator.check_publish({"state": "closed"})


if __name__ == "__main__":
    unittest.main()
