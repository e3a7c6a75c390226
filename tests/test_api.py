# tests/test_api.py
import json
import uuid

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, insert

from app.api.v1.ai import get_openrouter_service
from app.core.config import settings
from app.core.errors import InvalidAIResponseError
from app.models.vocabulary import Category, Word
from app.schemas.word import AiGeneratedWords, AiUsage, GeneratedWordSuggestion
from app.services.ai_generation import AiGenerationService, get_ai_generation_service
from conftest import TEST_DB_PATH, chat_completion
from main import app


class RecordingGenerationService(AiGenerationService):
    def __init__(self, error=None):
        super().__init__(openrouter=None)
        self.commands = []
        self.error = error

    async def generate_words(self, command, cancel_event=None):
        self.commands.append(command)
        if self.error is not None:
            raise self.error
        return AiGeneratedWords(
            generated=[GeneratedWordSuggestion(term="cuchara", translation="spoon", examplesMd="- La cuchara")],
            model="test/model",
            usage=AiUsage(promptTokens=10, completionTokens=20),
        )


@pytest.fixture
def client():
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def seed_category(client):
    """在测试库中写入一个分类及其已有单词，返回分类ID"""
    engine = create_engine(f"sqlite:///{TEST_DB_PATH}")

    def _seed(name="Kitchen", terms=()):
        category_id = f"cat_{uuid.uuid4().hex[:12]}"
        with engine.begin() as conn:
            conn.execute(insert(Category.__table__).values(
                id=category_id, name=name, learning_language_code="es",
            ))
            for term in terms:
                conn.execute(insert(Word.__table__).values(
                    id=f"word_{uuid.uuid4().hex[:12]}",
                    category_id=category_id,
                    term=term,
                    translation=f"{term}-translation",
                    examples_md="",
                ))
        return category_id

    yield _seed
    engine.dispose()


def _generate_payload(**kwargs):
    payload = {"learningLanguageId": "es", "userLanguage": "en"}
    payload.update(kwargs)
    return payload


def _override_openrouter(make_service, handler):
    service = make_service(handler)
    app.dependency_overrides[get_openrouter_service] = lambda: service
    return service


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


def test_system_info(client):
    response = client.get("/api/v1/system/info")
    data = response.json()["data"]
    assert response.status_code == 200
    assert data["aiConfigured"] is True
    assert data["aiModel"] == "test/model"


class TestGenerateWordsEndpoint:

    def test_unknown_category_returns_404(self, client):
        app.dependency_overrides[get_ai_generation_service] = RecordingGenerationService
        response = client.post("/api/v1/categories/cat_missing/words/ai-generate", json=_generate_payload())

        assert response.status_code == 404
        body = response.json()
        assert body["code"] == 404
        assert body["data"] == {"error": "NotFound"}

    def test_generates_with_category_context(self, client, seed_category):
        category_id = seed_category(name="Kitchen", terms=["tenedor", "plato"])
        service = RecordingGenerationService()
        app.dependency_overrides[get_ai_generation_service] = lambda: service

        response = client.post(
            f"/api/v1/categories/{category_id}/words/ai-generate",
            json=_generate_payload(count=3, excludeTerms=["vaso", "Plato"]),
        )

        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "生成成功"
        assert body["data"]["generated"][0]["term"] == "cuchara"
        assert body["data"]["usage"] == {"promptTokens": 10, "completionTokens": 20}

        command = service.commands[0]
        assert command.categoryContext == "Kitchen"
        assert command.count == 3
        assert command.excludeTerms == ["vaso", "Plato", "tenedor"]

    def test_explicit_context_wins(self, client, seed_category):
        category_id = seed_category(name="Kitchen")
        service = RecordingGenerationService()
        app.dependency_overrides[get_ai_generation_service] = lambda: service

        client.post(
            f"/api/v1/categories/{category_id}/words/ai-generate",
            json=_generate_payload(categoryContext="Cutlery"),
        )

        assert service.commands[0].categoryContext == "Cutlery"
        assert service.commands[0].excludeTerms is None

    def test_invalid_count_returns_400(self, client, seed_category):
        category_id = seed_category()
        app.dependency_overrides[get_ai_generation_service] = RecordingGenerationService

        response = client.post(
            f"/api/v1/categories/{category_id}/words/ai-generate",
            json=_generate_payload(count=11),
        )

        assert response.status_code == 400
        assert response.json()["data"] == {"error": "InvalidInput"}
        assert "count" in response.json()["message"]

    def test_invalid_ai_response_returns_422(self, client, seed_category):
        category_id = seed_category()
        service = RecordingGenerationService(error=InvalidAIResponseError("AI 未生成有效的单词建议"))
        app.dependency_overrides[get_ai_generation_service] = lambda: service

        response = client.post(
            f"/api/v1/categories/{category_id}/words/ai-generate",
            json=_generate_payload(),
        )

        assert response.status_code == 422
        assert response.json()["data"] == {"error": "InvalidAIResponse"}


class TestChatEndpoints:

    def test_chat_returns_reply(self, client, make_service):
        _override_openrouter(make_service, lambda request: httpx.Response(200, json=chat_completion("¡Hola!")))

        response = client.post("/api/v1/ai/chat", json={"messages": [{"role": "user", "content": "Hi"}]})

        assert response.status_code == 200
        assert response.json()["data"] == {"model": "test/model", "reply": "¡Hola!"}

    def test_chat_forwards_parameters(self, client, make_service):
        captured = []

        def handler(request):
            captured.append(json.loads(request.content))
            return httpx.Response(200, json=chat_completion())

        _override_openrouter(make_service, handler)

        client.post("/api/v1/ai/chat", json={
            "messages": [{"role": "user", "content": "Hi"}],
            "temperature": 0.1,
            "max_tokens": 64,
        })

        assert captured[0]["temperature"] == 0.1
        assert captured[0]["max_tokens"] == 64

    def test_chat_upstream_auth_failure(self, client, make_service):
        _override_openrouter(make_service, lambda request: httpx.Response(401, json={"error": {"message": "bad key"}}))

        response = client.post("/api/v1/ai/chat", json={"messages": [{"role": "user", "content": "Hi"}]})

        assert response.status_code == 502
        assert response.json()["data"] == {"error": "ExternalServiceError"}
        assert "bad key" not in response.json()["message"]

    def test_chat_empty_messages_rejected(self, client):
        response = client.post("/api/v1/ai/chat", json={"messages": []})
        assert response.status_code == 400

    def test_chat_without_api_key(self, client, monkeypatch):
        monkeypatch.setattr(settings, "OPENROUTER_API_KEY", "")

        response = client.post("/api/v1/ai/chat", json={"messages": [{"role": "user", "content": "Hi"}]})

        assert response.status_code == 400
        assert response.json()["data"] == {"error": "ValidationError"}

    def test_chat_stream_emits_ndjson(self, client, make_service):
        body = (
            'data: {"id": "g", "model": "test/model", "choices": [{"index": 0, "delta": {"content": "Ho"}}]}\n\n'
            'data: {"id": "g", "model": "test/model", "choices": [{"index": 0, "delta": {"content": "la"}}]}\n\n'
            "data: [DONE]\n\n"
        )
        _override_openrouter(make_service, lambda request: httpx.Response(200, content=body.encode("utf-8")))

        response = client.post("/api/v1/ai/chat/stream", json={"messages": [{"role": "user", "content": "Hi"}]})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/x-ndjson")
        lines = [json.loads(line) for line in response.text.splitlines() if line]
        assert [line["choices"][0]["delta"]["content"] for line in lines] == ["Ho", "la"]

    def test_chat_stream_reports_error_line(self, client, make_service):
        _override_openrouter(make_service, lambda request: httpx.Response(429))

        response = client.post("/api/v1/ai/chat/stream", json={"messages": [{"role": "user", "content": "Hi"}]})

        lines = [json.loads(line) for line in response.text.splitlines() if line]
        assert lines == [{"error": {"code": "RateLimited", "message": "AI 服务请求过于频繁，请稍后再试"}}]
