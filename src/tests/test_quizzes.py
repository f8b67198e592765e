import unittest
from unittest.mock import patch
from bson import ObjectId

from src.quizzes.services import QuizService
from src.quizzes.models import normalize_options, check_question_invariants, QuestionDraft
from src.shared.exceptions import ConflictError, NotFoundError, ValidationError
from src.shared.constants import UNIDENTIFIED_CONCEPT
from src.tests.fakes import (
    FakeDatabase, FakeGenerativeClient, seed_class, seed_quiz,
    mc_question, pre_quiz_payload, post_quiz_payload, READING
)


class TestQuestionModels(unittest.TestCase):
    """Pruebas de las reglas de preguntas"""

    def test_multiple_choice_requires_four_options(self):
        question = {
            "prompt": "¿?", "question_type": "multiple_choice",
            "options": [{"id": "a", "label": "1"}, {"id": "b", "label": "2"}], "correct_answer": "a"
        }
        with self.assertRaises(ValidationError):
            check_question_invariants(question)

    def test_correct_answer_must_match_an_option(self):
        options = normalize_options(["1", "2", "3", "4"])
        with self.assertRaises(ValidationError):
            check_question_invariants({
                "prompt": "¿?", "question_type": "multiple_choice", "options": options, "correct_answer": "otra"
            })

    def test_open_response_rejects_options(self):
        with self.assertRaises(ValidationError):
            check_question_invariants({
                "prompt": "¿?", "question_type": "open_response",
                "options": [{"id": "a", "label": "x"}], "correct_answer": ""
            })

    def test_normalize_options_keeps_unique_ids_only_when_asked(self):
        raw = [{"id": "a", "label": "uno"}, {"id": "a", "label": "dos"}, {"id": "c", "label": " "}]
        kept = normalize_options(raw, keep_ids=True)
        self.assertEqual(len(kept), 2)
        self.assertEqual(kept[0]["id"], "a")
        self.assertNotEqual(kept[1]["id"], "a")
        fresh = normalize_options(raw)
        self.assertNotEqual(fresh[0]["id"], "a")

    def test_draft_resolves_correct_option_id(self):
        fields = QuestionDraft.model_validate(mc_question(correct_index=2)).question_fields()
        self.assertEqual(fields["correct_answer"], fields["options"][2]["id"])
        self.assertEqual(len({o["id"] for o in fields["options"]}), 4)

    def test_draft_without_options_becomes_open_response(self):
        draft = QuestionDraft.model_validate({"prompt": "Explica", "question_type": "desconocido"})
        self.assertEqual(draft.question_type, "open_response")


class QuizServiceTestCase(unittest.TestCase):

    def setUp(self):
        self.db = FakeDatabase()

    def seed(self, **kwargs):
        self.ids = seed_class(self.db, **kwargs)
        self.teacher_id = str(self.ids["teacher_id"])
        self.class_id = str(self.ids["class_id"])

    def service(self, *responses):
        self.client = FakeGenerativeClient(*responses)
        return QuizService(db=self.db, ai_client=self.client)

    def class_state(self):
        return self.db.classes.find_one({"_id": self.ids["class_id"]})["state"]


class TestGenerateQuiz(QuizServiceTestCase):
    """Pruebas de generación de evaluaciones"""

    def test_pre_quiz_requires_approved_guide(self):
        self.seed(state="guide_editing", version_state="draft")

        with self.assertRaises(ValidationError):
            self.service().generate_quiz(self.teacher_id, self.class_id, "pre")

        self.assertEqual(self.db.quizzes.count_documents({}), 0)
        self.assertEqual(self.class_state(), "guide_editing")
        self.assertEqual(self.client.calls, [])

    def test_pre_quiz_from_approved_guide(self):
        self.seed(state="guide_approved", version_state="approved")

        result = self.service(pre_quiz_payload()).generate_quiz(self.teacher_id, self.class_id, "pre")

        self.assertEqual(len(result["questions"]), 3)
        self.assertEqual(result["reading"], READING)
        self.assertEqual(result["time_limit"], 5)
        self.assertEqual(self.class_state(), "pre_quiz_generating")
        for question in result["questions"]:
            self.assertEqual(question["context_text"], READING)
            self.assertEqual(len(question["options"]), 4)
            self.assertIn(question["correct_answer"], [o["id"] for o in question["options"]])

    def test_temporary_topic_skips_guide_guard(self):
        self.seed(state="draft", temporary=True)

        result = self.service(pre_quiz_payload()).generate_quiz(self.teacher_id, self.class_id, "pre")

        self.assertEqual(len(result["questions"]), 3)
        self.assertEqual(self.db.quizzes.count_documents({"class_id": self.ids["class_id"]}), 1)

    def test_post_quiz_keeps_exactly_ten_questions(self):
        self.seed(state="final_guide", version_state="final", is_final=True)

        result = self.service(post_quiz_payload(12)).generate_quiz(self.teacher_id, self.class_id, "post")

        self.assertEqual(len(result["questions"]), 10)
        self.assertIsNone(result["reading"])
        self.assertEqual([q["order"] for q in result["questions"]], list(range(1, 11)))
        self.assertEqual(self.db.questions.count_documents({"quiz_id": result["quiz_id"]}), 10)
        self.assertEqual(self.class_state(), "post_quiz_generating")

    def test_post_quiz_with_too_few_questions_persists_nothing(self):
        self.seed(state="final_guide", version_state="final", is_final=True)

        with self.assertRaises(ValidationError) as ctx:
            self.service(post_quiz_payload(9)).generate_quiz(self.teacher_id, self.class_id, "post")

        self.assertEqual(ctx.exception.details, {"expected": 10, "received": 9})
        self.assertEqual(self.db.quizzes.count_documents({}), 0)
        self.assertEqual(self.db.questions.count_documents({}), 0)
        self.assertEqual(self.class_state(), "final_guide")

    def test_post_quiz_requires_final_guide(self):
        self.seed(state="modifying_guide", version_state="approved")
        with self.assertRaises(ValidationError):
            self.service().generate_quiz(self.teacher_id, self.class_id, "post")

    def test_second_quiz_of_same_kind_conflicts(self):
        self.seed(state="pre_quiz_generating", version_state="approved")
        seed_quiz(self.db, self.ids["class_id"], "pre")
        with self.assertRaises(ConflictError):
            self.service().generate_quiz(self.teacher_id, self.class_id, "pre")

    def test_missing_reading_fails(self):
        self.seed(state="guide_approved", version_state="approved")
        payload = pre_quiz_payload()
        payload["reading"] = ""
        with self.assertRaises(ValidationError):
            self.service(payload).generate_quiz(self.teacher_id, self.class_id, "pre")
        self.assertEqual(self.class_state(), "guide_approved")

    def test_invalid_kind(self):
        self.seed(state="guide_approved", version_state="approved")
        with self.assertRaises(ValidationError):
            self.service().generate_quiz(self.teacher_id, self.class_id, "intermedia")


class TestEditQuiz(QuizServiceTestCase):
    """Pruebas de edición, regeneración y publicación"""

    def setUp(self):
        super().setUp()
        self.seed(state="pre_quiz_generating", version_state="approved")
        self.quiz_id, self.question_ids = seed_quiz(self.db, self.ids["class_id"], "pre")

    def question(self, index=0):
        return self.db.questions.find_one({"_id": self.question_ids[index]})

    def test_publish_twice_conflicts_and_keeps_sent_at(self):
        service = self.service()
        first = service.publish_quiz(self.teacher_id, str(self.quiz_id))
        self.assertEqual(first["class_state"], "pre_quiz_sent")

        with self.assertRaises(ConflictError):
            service.publish_quiz(self.teacher_id, str(self.quiz_id))

        quiz = self.db.quizzes.find_one({"_id": self.quiz_id})
        self.assertEqual(quiz["state"], "published")
        self.assertEqual(quiz["sent_at"], first["sent_at"])

    def test_editing_after_publish_conflicts(self):
        self.db.quizzes.update_one({"_id": self.quiz_id}, {"$set": {"state": "published"}})
        with self.assertRaises(ConflictError):
            self.service().edit_question(self.teacher_id, str(self.question_ids[0]), {"prompt": "Nuevo"})
        with self.assertRaises(ConflictError):
            self.service().edit_reading(self.teacher_id, str(self.quiz_id), "Otra lectura")

    def test_swap_replaces_content_but_keeps_identity(self):
        before = self.question()
        replacement = mc_question("¿Qué fracción equivale a 2/3?", correct_index=3)

        result = self.service(replacement).modify_single_question(
            self.teacher_id, str(self.quiz_id), str(before["_id"]), "swap"
        )

        after = self.question()
        self.assertEqual(after["_id"], before["_id"])
        self.assertEqual(after["quiz_id"], self.quiz_id)
        self.assertEqual(after["prompt"], "¿Qué fracción equivale a 2/3?")
        self.assertTrue({o["id"] for o in after["options"]}.isdisjoint({o["id"] for o in before["options"]}))
        self.assertEqual(after["correct_answer"], after["options"][3]["id"])
        self.assertEqual(result["updated_question"]["_id"], before["_id"])
        self.assertEqual(self.client.calls[0]["temperature"], 0.7)

    def test_adjust_difficulty_requires_direction(self):
        with self.assertRaises(ValidationError):
            self.service().modify_single_question(
                self.teacher_id, str(self.quiz_id), str(self.question_ids[0]), "adjust_difficulty"
            )

    def test_unusable_replacement_leaves_question_untouched(self):
        before = self.question()
        with self.assertRaises(ValidationError):
            self.service({"prompt": "Sin opciones suficientes", "options": ["a", "b"],
                          "question_type": "multiple_choice"}).modify_single_question(
                self.teacher_id, str(self.quiz_id), str(before["_id"]), "adjust_difficulty", "harder"
            )
        self.assertEqual(self.question()["prompt"], before["prompt"])

    def test_edit_question_keeps_option_ids(self):
        before = self.question()
        options = [dict(o, label=o["label"].upper()) for o in before["options"]]

        updated = self.service().edit_question(self.teacher_id, str(before["_id"]), {
            "prompt": "Enunciado editado", "options": options, "correct_index": 2
        })

        self.assertEqual([o["id"] for o in updated["options"]], [o["id"] for o in before["options"]])
        self.assertEqual(updated["correct_answer"], before["options"][2]["id"])
        self.assertEqual(self.question()["prompt"], "Enunciado editado")

    def test_edit_question_without_optional_fields(self):
        before = self.question(1)
        self.assertNotIn("cognitive_level", before)

        updated = self.service().edit_question(self.teacher_id, str(before["_id"]), {"prompt": "Otra redacción"})

        stored = self.question(1)
        self.assertEqual(stored["prompt"], "Otra redacción")
        self.assertIsNone(stored["cognitive_level"])
        self.assertEqual(stored["feedback"], "")
        self.assertEqual(updated["correct_answer"], before["correct_answer"])

    def test_publish_is_reverted_when_class_state_changes(self):
        service = self.service()
        with patch.object(service.workflow, "advance", side_effect=ConflictError("La clase fue modificada")):
            with self.assertRaises(ConflictError):
                service.publish_quiz(self.teacher_id, str(self.quiz_id))

        quiz = self.db.quizzes.find_one({"_id": self.quiz_id})
        self.assertEqual(quiz["state"], "draft")
        self.assertIsNone(quiz["sent_at"])
        self.assertEqual(self.class_state(), "pre_quiz_generating")

        result = service.publish_quiz(self.teacher_id, str(self.quiz_id))
        self.assertEqual(result["class_state"], "pre_quiz_sent")

    def test_edit_question_rejects_broken_invariants(self):
        with self.assertRaises(ValidationError):
            self.service().edit_question(self.teacher_id, str(self.question_ids[0]), {"correct_answer": "inexistente"})

    def test_edit_question_of_other_teacher_is_not_found(self):
        with self.assertRaises(NotFoundError):
            self.service().edit_question(str(ObjectId()), str(self.question_ids[0]), {"prompt": "x"})

    def test_edit_reading_updates_questions(self):
        result = self.service().edit_reading(self.teacher_id, str(self.quiz_id), "  Texto nuevo de lectura  ")
        self.assertEqual(result["reading"], "Texto nuevo de lectura")
        self.assertEqual(result["word_count"], 4)
        for question_id in self.question_ids:
            self.assertEqual(self.db.questions.find_one({"_id": question_id})["context_text"], "Texto nuevo de lectura")

    def test_regenerate_replaces_all_three_questions(self):
        result = self.service(pre_quiz_payload()).regenerate_all_questions(self.teacher_id, str(self.quiz_id))

        self.assertEqual(len(result["questions"]), 3)
        stored = list(self.db.questions.find({"quiz_id": self.quiz_id}))
        self.assertEqual(len(stored), 3)
        self.assertTrue({q["_id"] for q in stored}.isdisjoint(set(self.question_ids)))
        self.assertIn(READING, self.client.calls[0]["user_prompt"])

    def test_regenerate_with_mismatched_class_is_not_found(self):
        with self.assertRaises(NotFoundError):
            self.service().regenerate_all_questions(self.teacher_id, str(self.quiz_id), str(ObjectId()))

    def test_refine_reading_requires_instruction_for_custom(self):
        with self.assertRaises(ValidationError):
            self.service().refine_reading(self.teacher_id, str(self.quiz_id), None, "custom")

    def test_refine_reading_updates_quiz_and_questions(self):
        result = self.service("```\nLectura más sencilla\n```").refine_reading(
            self.teacher_id, str(self.quiz_id), None, "custom", "Más sencilla"
        )
        self.assertEqual(result["reading"], "Lectura más sencilla")
        self.assertEqual(self.db.quizzes.find_one({"_id": self.quiz_id})["reading"], "Lectura más sencilla")
        self.assertEqual(self.question(1)["context_text"], "Lectura más sencilla")
        self.assertIn("Más sencilla", self.client.calls[0]["user_prompt"])

    def test_identify_concepts_marks_missing_ones(self):
        payload = {"concepts": [{"question_id": str(self.question_ids[0]), "concept": "Equivalencia"}]}

        result = self.service(payload).identify_concepts(self.teacher_id, str(self.quiz_id))

        concepts = [c["concept"] for c in result["concepts"]]
        self.assertEqual(concepts, ["Equivalencia", UNIDENTIFIED_CONCEPT, UNIDENTIFIED_CONCEPT])
        self.assertEqual(self.question()["concept"], "Equivalencia")
        self.assertEqual(self.client.calls[0]["temperature"], 0.3)

    def test_get_quiz_returns_ordered_questions(self):
        quiz = self.service().get_quiz(self.teacher_id, str(self.quiz_id))
        self.assertEqual([q["order"] for q in quiz["questions"]], [1, 2, 3])


if __name__ == "__main__":
    unittest.main()
