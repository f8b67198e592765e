import unittest
from unittest.mock import patch, MagicMock

import requests
from pydantic import BaseModel

from src.llm.services import GenerativeTextClient
from src.llm.exceptions import (
    RateLimitedError, InsufficientQuotaError, UpstreamUnauthorizedError,
    UpstreamBadRequestError, TransportError
)
from src.llm.parsing import parse_ai_json, parse_structured, clean_text


def _response(status_code=200, content="hola", payload=None):
    response = MagicMock()
    response.status_code = status_code
    response.text = "detalle del error"
    response.json.return_value = payload if payload is not None else {
        "model": "google/gemini-2.5-flash",
        "choices": [{"message": {"content": content}}],
        "usage": {"total_tokens": 42},
    }
    return response


class TestGenerativeTextClient(unittest.TestCase):
    """Pruebas del cliente de generación y su taxonomía de errores"""

    def setUp(self):
        self.client = GenerativeTextClient(api_key="clave", max_retries=3, retry_delay=0)

    @patch("src.llm.services.requests.post")
    def test_generate_returns_content_and_metadata(self, mock_post):
        mock_post.return_value = _response(content='{"ok": true}')

        result = self.client.generate("sistema", "usuario", temperature=0.3, max_tokens=500, json_output=True)

        self.assertEqual(result.content, '{"ok": true}')
        self.assertEqual(result.usage["total_tokens"], 42)
        payload = mock_post.call_args.kwargs["json"]
        self.assertEqual(payload["response_format"], {"type": "json_object"})
        self.assertEqual(payload["temperature"], 0.3)
        self.assertEqual(payload["max_tokens"], 500)
        self.assertEqual([m["role"] for m in payload["messages"]], ["system", "user"])
        self.assertEqual(mock_post.call_args.kwargs["headers"]["Authorization"], "Bearer clave")

    @patch("src.llm.services.requests.post")
    def test_plain_text_request_omits_response_format(self, mock_post):
        mock_post.return_value = _response()
        self.client.generate("sistema", "usuario")
        self.assertNotIn("response_format", mock_post.call_args.kwargs["json"])

    @patch("src.llm.services.requests.post")
    def test_rate_limit_is_retried_until_success(self, mock_post):
        mock_post.side_effect = [_response(429), _response(429), _response(content="listo")]

        result = self.client.generate("sistema", "usuario")

        self.assertEqual(result.content, "listo")
        self.assertEqual(mock_post.call_count, 3)

    @patch("src.llm.services.requests.post")
    def test_rate_limit_exhausts_attempts(self, mock_post):
        mock_post.return_value = _response(429)

        with self.assertRaises(RateLimitedError) as ctx:
            self.client.generate("sistema", "usuario")

        self.assertEqual(mock_post.call_count, 3)
        self.assertEqual(ctx.exception.code, 429)
        self.assertEqual(ctx.exception.details["kind"], "rate_limited")

    @patch("src.llm.services.requests.post")
    def test_transport_errors_are_retried(self, mock_post):
        mock_post.side_effect = [requests.ConnectionError("caída"), _response(503), _response(content="ok")]

        result = self.client.generate("sistema", "usuario")

        self.assertEqual(result.content, "ok")
        self.assertEqual(mock_post.call_count, 3)

    @patch("src.llm.services.requests.post")
    def test_non_retryable_errors_propagate_immediately(self, mock_post):
        cases = [
            (402, InsufficientQuotaError, 402),
            (401, UpstreamUnauthorizedError, 502),
            (403, UpstreamUnauthorizedError, 502),
            (400, UpstreamBadRequestError, 502),
        ]
        for status, error_class, surfaced in cases:
            with self.subTest(status=status):
                mock_post.reset_mock()
                mock_post.return_value = _response(status)
                with self.assertRaises(error_class) as ctx:
                    self.client.generate("sistema", "usuario")
                self.assertEqual(mock_post.call_count, 1)
                self.assertEqual(ctx.exception.code, surfaced)

    @patch("src.llm.services.requests.post")
    def test_response_without_content_is_transport_error(self, mock_post):
        mock_post.return_value = _response(payload={"choices": [{"message": {}}]})

        with self.assertRaises(TransportError):
            self.client.generate("sistema", "usuario")
        self.assertEqual(mock_post.call_count, 3)

    @patch("src.llm.services.requests.post")
    def test_missing_api_key_fails_without_calling_service(self, mock_post):
        client = GenerativeTextClient(api_key=None)
        with self.assertRaises(UpstreamUnauthorizedError):
            client.generate("sistema", "usuario")
        mock_post.assert_not_called()

    def test_from_config_reads_flask_style_mapping(self):
        client = GenerativeTextClient.from_config({
            "AI_API_KEY": "k", "AI_MODEL": "modelo-x", "AI_MAX_RETRIES": 5,
            "AI_RETRY_DELAY": 2, "AI_TIMEOUT": 10
        })
        self.assertEqual(client.model, "modelo-x")
        self.assertEqual(client.max_retries, 5)
        self.assertEqual(client.retry_delay, 2.0)


class _Sample(BaseModel):
    title: str = ""
    items: list = []


class TestParsing(unittest.TestCase):
    """Pruebas de la lectura defensiva de la salida generada"""

    def test_parses_plain_json(self):
        self.assertEqual(parse_ai_json('{"a": 1}'), {"a": 1})

    def test_parses_fenced_json(self):
        self.assertEqual(parse_ai_json('Aquí está:\n```json\n{"a": [1, 2]}\n```'), {"a": [1, 2]})

    def test_parses_json_surrounded_by_text(self):
        self.assertEqual(parse_ai_json('Respuesta: {"a": "b"} Fin.'), {"a": "b"})

    def test_returns_none_for_garbage(self):
        self.assertIsNone(parse_ai_json("sin json"))
        self.assertIsNone(parse_ai_json(""))
        self.assertIsNone(parse_ai_json(None))

    def test_parse_structured_uses_fallback(self):
        fallback = _Sample(title="respaldo")
        self.assertIs(parse_structured("nada útil", _Sample, fallback), fallback)
        self.assertIs(parse_structured('[1, 2]', _Sample, fallback), fallback)
        self.assertIs(parse_structured('{"items": 3}', _Sample, fallback), fallback)

    def test_parse_structured_validates_model(self):
        parsed = parse_structured('{"title": "ok", "items": [1]}', _Sample, _Sample())
        self.assertEqual(parsed.title, "ok")

    def test_clean_text_strips_fences_and_quotes(self):
        self.assertEqual(clean_text('```\nTexto nuevo\n```'), "Texto nuevo")
        self.assertEqual(clean_text('"Texto"'), "Texto")


if __name__ == "__main__":
    unittest.main()
