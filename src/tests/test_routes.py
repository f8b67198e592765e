import unittest
from unittest.mock import patch
from bson import ObjectId
from flask import Flask
from flask_jwt_extended import JWTManager, create_access_token

from src.shared.limiter import init_limiter
from src.classes.routes import classes_bp
from src.guides.routes import guides_bp
from src.quizzes.routes import quizzes_bp
from src.remediation.routes import remediation_bp
from src.feedback.routes import feedback_bp
from src.llm.exceptions import RateLimitedError
from src.tests.fakes import FakeDatabase, FakeGenerativeClient, seed_class, seed_quiz, pre_quiz_payload


class RouteTestCase(unittest.TestCase):
    """Aplicación mínima con los blueprints del flujo y una base de datos en memoria"""

    def setUp(self):
        self.app = Flask(__name__)
        self.app.config.update(TESTING=True, JWT_SECRET_KEY="test-secret-key", RATELIMIT_ENABLED=False)
        self.app.url_map.strict_slashes = False
        JWTManager(self.app)
        init_limiter(self.app)
        for blueprint, prefix in ((classes_bp, "classes"), (guides_bp, "guides"), (quizzes_bp, "quizzes"),
                                  (remediation_bp, "remediation"), (feedback_bp, "feedback")):
            self.app.register_blueprint(blueprint, url_prefix=f"/api/{prefix}")

        self.db = FakeDatabase()
        self.ai_client = FakeGenerativeClient()
        patchers = [patch("src.shared.decorators.get_db", return_value=self.db),
                    patch("src.shared.standardization.get_db", return_value=self.db)]
        for module in ("guides", "quizzes", "remediation", "feedback"):
            patchers.append(patch(f"src.{module}.services.get_generative_client", return_value=self.ai_client))
        for patcher in patchers:
            patcher.start()
            self.addCleanup(patcher.stop)

        self.client = self.app.test_client()

    def token_for(self, user_id):
        with self.app.app_context():
            return create_access_token(identity=str(user_id))

    def headers(self, user_id):
        return {"Authorization": f"Bearer {self.token_for(user_id)}"}


class TestAuthentication(RouteTestCase):

    def setUp(self):
        super().setUp()
        self.ids = seed_class(self.db, state="guide_approved", version_state="approved")

    def test_missing_token_is_rejected(self):
        response = self.client.get(f"/api/classes/{self.ids['class_id']}")
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.get_json()["error"], "ERROR_AUTENTICACION")

    def test_user_without_teacher_profile_is_forbidden(self):
        student_user = ObjectId()
        self.db.users.insert_one({"_id": student_user, "email": "alumno@example.com", "role": "student"})

        response = self.client.get(f"/api/classes/{self.ids['class_id']}", headers=self.headers(student_user))

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.get_json()["error"], "ERROR_PERMISO")

    def test_class_of_other_teacher_is_not_found(self):
        other = seed_class(self.db)
        response = self.client.get(f"/api/classes/{other['class_id']}", headers=self.headers(self.ids["user_id"]))
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.get_json()["error"], "NotFoundError")

    def test_owner_reads_class(self):
        response = self.client.get(f"/api/classes/{self.ids['class_id']}", headers=self.headers(self.ids["user_id"]))
        body = response.get_json()
        self.assertEqual(response.status_code, 200)
        self.assertTrue(body["success"])
        self.assertEqual(body["data"]["_id"], str(self.ids["class_id"]))


class TestQuizRoutes(RouteTestCase):
    """Pruebas de los endpoints de evaluaciones"""

    def test_missing_fields(self):
        ids = seed_class(self.db, state="guide_approved", version_state="approved")
        response = self.client.post("/api/quizzes/generate", json={"class_id": str(ids["class_id"])},
                                    headers=self.headers(ids["user_id"]))
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["error"], "CAMPOS_FALTANTES")

    def test_pre_quiz_without_approved_guide(self):
        ids = seed_class(self.db, state="guide_editing", version_state="draft")

        response = self.client.post("/api/quizzes/generate", json={"class_id": str(ids["class_id"]), "kind": "pre"},
                                    headers=self.headers(ids["user_id"]))

        body = response.get_json()
        self.assertEqual(response.status_code, 400)
        self.assertFalse(body["success"])
        self.assertEqual(body["error"], "ValidationError")
        self.assertEqual(self.db.quizzes.count_documents({}), 0)

    def test_generate_pre_quiz(self):
        ids = seed_class(self.db, state="guide_approved", version_state="approved")
        self.ai_client.responses.append(pre_quiz_payload())

        response = self.client.post("/api/quizzes/generate", json={"class_id": str(ids["class_id"]), "kind": "pre"},
                                    headers=self.headers(ids["user_id"]))

        body = response.get_json()
        self.assertEqual(response.status_code, 201)
        self.assertEqual(len(body["data"]["questions"]), 3)
        self.assertIsInstance(body["data"]["quiz_id"], str)

    def test_publish_twice_returns_conflict(self):
        ids = seed_class(self.db, state="pre_quiz_generating", version_state="approved")
        quiz_id, _ = seed_quiz(self.db, ids["class_id"], "pre")
        headers = self.headers(ids["user_id"])

        first = self.client.post("/api/quizzes/publish", json={"quiz_id": str(quiz_id)}, headers=headers)
        second = self.client.post("/api/quizzes/publish", json={"quiz_id": str(quiz_id)}, headers=headers)

        self.assertEqual(first.status_code, 200)
        self.assertEqual(first.get_json()["data"]["class_state"], "pre_quiz_sent")
        self.assertEqual(second.status_code, 409)
        self.assertEqual(second.get_json()["error"], "ConflictError")

    def test_invalid_modify_action(self):
        ids = seed_class(self.db, state="pre_quiz_generating", version_state="approved")
        quiz_id, question_ids = seed_quiz(self.db, ids["class_id"], "pre")

        response = self.client.post("/api/quizzes/modify-question", json={
            "quiz_id": str(quiz_id), "question_id": str(question_ids[0]), "action": "borrar"
        }, headers=self.headers(ids["user_id"]))

        self.assertEqual(response.status_code, 400)


class TestGuideRoutes(RouteTestCase):
    """Pruebas de los endpoints de guías"""

    def test_upstream_rate_limit_is_reported(self):
        ids = seed_class(self.db, state="draft")
        self.ai_client.responses.append(RateLimitedError("Límite de solicitudes", upstream_status=429))

        response = self.client.post("/api/guides/generate", json={"class_id": str(ids["class_id"])},
                                    headers=self.headers(ids["user_id"]))

        body = response.get_json()
        self.assertEqual(response.status_code, 429)
        self.assertEqual(body["error"], "RateLimitedError")
        self.assertEqual(body["details"]["kind"], "rate_limited")
        self.assertEqual(self.db.classes.find_one({"_id": ids["class_id"]})["state"], "draft")

    def test_generation_after_pre_quiz_sent_conflicts(self):
        ids = seed_class(self.db, state="pre_quiz_sent", version_state="approved")

        response = self.client.post("/api/guides/generate", json={"class_id": str(ids["class_id"])},
                                    headers=self.headers(ids["user_id"]))

        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.get_json()["error"], "ConflictError")
        self.assertEqual(self.ai_client.calls, [])


class TestFeedbackRoutes(RouteTestCase):

    def test_feedback_without_responses(self):
        ids = seed_class(self.db, state="post_quiz_sent", version_state="final", is_final=True)
        quiz_id, _ = seed_quiz(self.db, ids["class_id"], "post", state="published", questions=10)

        response = self.client.post("/api/feedback/generate", json={
            "class_id": str(ids["class_id"]), "post_quiz_id": str(quiz_id)
        }, headers=self.headers(ids["user_id"]))

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["error"], "ValidationError")


if __name__ == "__main__":
    unittest.main()
