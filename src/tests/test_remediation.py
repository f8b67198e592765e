import unittest
from bson import ObjectId

from src.remediation.services import RemediationService
from src.shared.exceptions import ConflictError, NotFoundError, ValidationError
from src.tests.fakes import FakeDatabase, FakeGenerativeClient, seed_class, seed_quiz, seed_response

ANALYSIS = {
    "recommendations": [
        {"title": "Reforzar el concepto de equivalencia", "description": "Usar material concreto",
         "priority": "alta", "area": "contenido"},
        {"title": "Más tiempo de práctica", "description": "Ampliar el desarrollo",
         "priority": "media", "area": "estructura"},
    ],
    "summary": "El grupo confunde simplificar con restar."
}

REWRITE = {
    "objectives": ["Identificar fracciones equivalentes con material concreto"],
    "structure": [{"duration": "15 min", "activity": "Regletas", "description": "Manipulación"}],
    "guiding_questions": ["¿Qué cambia y qué se conserva?"],
}


class RemediationTestCase(unittest.TestCase):

    def setUp(self):
        self.db = FakeDatabase()
        self.ids = seed_class(self.db, state="pre_quiz_sent", version_state="approved")
        self.teacher_id = str(self.ids["teacher_id"])
        self.class_id = str(self.ids["class_id"])
        self.quiz_id, self.question_ids = seed_quiz(self.db, self.ids["class_id"], "pre", state="published")

    def service(self, *responses):
        self.client = FakeGenerativeClient(*responses)
        return RemediationService(db=self.db, ai_client=self.client)

    def class_doc(self):
        return self.db.classes.find_one({"_id": self.ids["class_id"]})

    def add_recommendation(self, class_id=None, applied=False):
        rec_id = ObjectId()
        self.db.recommendations.insert_one({
            "_id": rec_id, "class_id": class_id or self.ids["class_id"], "source": "pre_quiz",
            "title": "Reforzar vocabulario", "description": "Glosario al inicio",
            "priority": "alta", "area": "contenido", "applied": applied, "applied_to_version_id": None
        })
        return rec_id


class TestProcessPreQuiz(RemediationTestCase):
    """Pruebas del análisis de la evaluación diagnóstica"""

    def test_without_completed_responses_nothing_is_written(self):
        seed_response(self.db, self.quiz_id, self.question_ids, [True, False, True], state="in_progress")

        with self.assertRaises(ValidationError):
            self.service().process_pre_quiz_responses(self.teacher_id, self.class_id, str(self.quiz_id))

        self.assertEqual(self.db.recommendations.count_documents({}), 0)
        self.assertEqual(self.class_doc()["state"], "pre_quiz_sent")
        self.assertEqual(self.client.calls, [])

    def test_records_recommendations_and_stats(self):
        seed_response(self.db, self.quiz_id, self.question_ids, [True, True, True])
        seed_response(self.db, self.quiz_id, self.question_ids, [True, False, False])

        result = self.service(ANALYSIS).process_pre_quiz_responses(self.teacher_id, self.class_id, str(self.quiz_id))

        self.assertEqual(result["stats"]["total_responses"], 2)
        self.assertEqual(result["stats"]["fully_correct"], 1)
        self.assertEqual([q["percentage"] for q in result["stats"]["per_question"]], [100.0, 50.0, 50.0])
        self.assertEqual(result["summary"], ANALYSIS["summary"])
        self.assertEqual(len(result["recommendations"]), 2)

        stored = list(self.db.recommendations.find({"class_id": self.ids["class_id"]}))
        self.assertEqual(len(stored), 2)
        self.assertTrue(all(r["source"] == "pre_quiz" and not r["applied"] for r in stored))
        self.assertEqual(self.class_doc()["state"], "analyzing_pre_quiz")
        self.assertEqual(self.db.guide_versions.count_documents({}), 1)
        self.assertEqual(self.client.calls[0]["max_tokens"], 2000)

    def test_rejects_post_quiz(self):
        post_id, _ = seed_quiz(self.db, self.ids["class_id"], "post", state="published")
        with self.assertRaises(ValidationError):
            self.service().process_pre_quiz_responses(self.teacher_id, self.class_id, str(post_id))

    def test_quiz_of_other_class_is_not_found(self):
        other = seed_class(self.db, state="pre_quiz_sent", version_state="approved")
        other_quiz, _ = seed_quiz(self.db, other["class_id"], "pre", state="published")
        with self.assertRaises(NotFoundError):
            self.service().process_pre_quiz_responses(self.teacher_id, self.class_id, str(other_quiz))


class TestApplyRecommendations(RemediationTestCase):
    """Pruebas de la incorporación de recomendaciones en la guía"""

    def setUp(self):
        super().setUp()
        self.db.classes.update_one({"_id": self.ids["class_id"]}, {"$set": {"state": "analyzing_pre_quiz"}})

    def test_apply_creates_new_draft_version(self):
        rec_id = self.add_recommendation()

        result = self.service(REWRITE).apply_recommendations(self.teacher_id, self.class_id, [str(rec_id)])

        self.assertEqual(result["version_number"], 2)
        self.assertFalse(result["is_final"])
        self.assertEqual(result["applied_count"], 1)
        self.assertEqual(result["class_state"], "modifying_guide")
        version = self.db.guide_versions.find_one({"_id": result["new_version_id"]})
        self.assertEqual(version["objectives"], REWRITE["objectives"])
        self.assertEqual(version["generation_context"]["base_version_id"], self.ids["version_id"])
        recommendation = self.db.recommendations.find_one({"_id": rec_id})
        self.assertTrue(recommendation["applied"])
        self.assertEqual(recommendation["applied_to_version_id"], result["new_version_id"])
        self.assertEqual(self.class_doc()["current_guide_version_id"], result["new_version_id"])
        self.assertEqual(self.client.calls[0]["max_tokens"], 2500)

    def test_finalize_with_manual_edits_only(self):
        edits = {"guiding_questions": ["¿Cómo lo explicarías a un compañero?"]}

        result = self.service().apply_recommendations(self.teacher_id, self.class_id, [], edits, finalize=True)

        self.assertTrue(result["is_final"])
        self.assertEqual(result["class_state"], "final_guide")
        self.assertEqual(result["applied_count"], 0)
        version = self.db.guide_versions.find_one({"_id": result["new_version_id"]})
        self.assertEqual(version["state"], "final")
        self.assertEqual(version["guiding_questions"], edits["guiding_questions"])
        self.assertEqual(version["objectives"], ["Identificar fracciones equivalentes"])
        self.assertEqual(self.client.calls, [])

    def test_unusable_rewrite_keeps_recommendations_pending(self):
        rec_id = self.add_recommendation()

        result = self.service("respuesta sin formato").apply_recommendations(
            self.teacher_id, self.class_id, [str(rec_id)]
        )

        self.assertEqual(result["applied_count"], 0)
        self.assertFalse(self.db.recommendations.find_one({"_id": rec_id})["applied"])
        self.assertEqual(self.db.guide_versions.count_documents({"class_id": self.ids["class_id"]}), 2)

    def test_already_applied_recommendations_are_not_reapplied(self):
        rec_id = self.add_recommendation(applied=True)

        result = self.service().apply_recommendations(self.teacher_id, self.class_id, [str(rec_id)])

        self.assertEqual(result["applied_count"], 0)
        self.assertEqual(self.client.calls, [])

    def test_recommendation_of_other_class_is_not_found(self):
        rec_id = self.add_recommendation(class_id=ObjectId())

        with self.assertRaises(NotFoundError):
            self.service().apply_recommendations(self.teacher_id, self.class_id, [str(rec_id)])

        self.assertEqual(self.db.guide_versions.count_documents({}), 1)

    def test_invalid_manual_edits(self):
        with self.assertRaises(ValidationError):
            self.service().apply_recommendations(self.teacher_id, self.class_id, [], {"structure": "no es lista"})

    def test_not_allowed_before_publishing_pre_quiz(self):
        self.db.classes.update_one({"_id": self.ids["class_id"]}, {"$set": {"state": "guide_approved"}})
        with self.assertRaises(ConflictError):
            self.service().apply_recommendations(self.teacher_id, self.class_id, [])

    def test_list_recommendations_filters_by_applied(self):
        self.add_recommendation()
        self.add_recommendation(applied=True)
        service = self.service()
        self.assertEqual(len(service.list_recommendations(self.teacher_id, self.class_id)), 2)
        self.assertEqual(len(service.list_recommendations(self.teacher_id, self.class_id, applied=False)), 1)


if __name__ == "__main__":
    unittest.main()
