"""Test the AI code-help service and routes."""

import json
from unittest.mock import AsyncMock

import httpx
import pytest

from codementor.ai.service import APOLOGY_MESSAGE, AIService, get_ai_service


def gemini_reply(text):
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


def make_service(handler, api_key="test-key"):
    return AIService(
        api_key=api_key,
        model="gemini-pro",
        base_url="https://ai.example.com/v1beta",
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.unit
async def test_generate_content_posts_prompt():
    seen = {}

    def handler(request):
        seen["url"] = request.url
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json=gemini_reply("Looks good"))

    service = make_service(handler)
    result = await service.analyze_code("print(1)", "python", "homework")

    assert result == "Looks good"
    assert seen["url"].path == "/v1beta/models/gemini-pro:generateContent"
    assert seen["url"].params["key"] == "test-key"
    prompt = seen["body"]["contents"][0]["parts"][0]["text"]
    assert "print(1)" in prompt
    assert "homework" in prompt
    assert seen["body"]["generationConfig"]["maxOutputTokens"] == 2048


@pytest.mark.unit
async def test_explain_code_uses_level_guidance():
    prompts = []

    def handler(request):
        prompts.append(json.loads(request.content)["contents"][0]["parts"][0]["text"])
        return httpx.Response(200, json=gemini_reply("ok"))

    service = make_service(handler)
    await service.explain_code("x = 1", "python", "beginner")
    await service.explain_code("x = 1", "python", "wizard")

    assert "completely new to programming" in prompts[0]
    assert "moderate technical detail" in prompts[1]


@pytest.mark.unit
async def test_upstream_error_status_degrades_to_apology():
    service = make_service(lambda request: httpx.Response(500, json={"error": "boom"}))

    assert await service.find_bugs("x", "python") == APOLOGY_MESSAGE


@pytest.mark.unit
async def test_malformed_payload_degrades_to_apology():
    service = make_service(lambda request: httpx.Response(200, json={"candidates": []}))

    assert await service.refactor_code("x", "python") == APOLOGY_MESSAGE


@pytest.mark.unit
async def test_invalid_json_degrades_to_apology():
    service = make_service(lambda request: httpx.Response(200, content=b"<html>"))

    assert await service.answer_question("why?") == APOLOGY_MESSAGE


@pytest.mark.unit
async def test_transport_error_degrades_to_apology():
    def handler(request):
        raise httpx.ConnectError("unreachable", request=request)

    service = make_service(handler)

    assert await service.analyze_code("x", "python") == APOLOGY_MESSAGE


@pytest.mark.unit
async def test_missing_api_key_degrades_without_calling_upstream():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json=gemini_reply("unused"))

    service = make_service(handler, api_key="")

    assert await service.analyze_code("x", "python") == APOLOGY_MESSAGE
    assert calls == []


@pytest.fixture
def fake_ai(app):
    service = AsyncMock(spec=AIService)
    app.dependency_overrides[get_ai_service] = lambda: service
    yield service
    app.dependency_overrides.clear()


@pytest.mark.integration
@pytest.mark.parametrize(
    "path,method,field,payload",
    [
        ("analyze-code", "analyze_code", "suggestions", {"code": "x", "language": "python"}),
        ("find-bugs", "find_bugs", "bugs", {"code": "x", "language": "python"}),
        ("explain-code", "explain_code", "explanation", {"code": "x", "language": "python", "level": "expert"}),
        ("refactor-code", "refactor_code", "refactoredCode", {"code": "x", "language": "python"}),
        ("ask", "answer_question", "answer", {"question": "What is a closure?"}),
    ],
)
async def test_ai_routes(client, fake_ai, make_user, auth_headers, path, method, field, payload):
    getattr(fake_ai, method).return_value = "generated"
    headers = auth_headers(await make_user())

    response = await client.post(f"/api/v1/ai/{path}", json=payload, headers=headers)

    assert response.status_code == 200
    assert response.json() == {"success": True, field: "generated"}
    getattr(fake_ai, method).assert_awaited_once()


@pytest.mark.integration
async def test_ai_routes_require_authentication(client, fake_ai):
    response = await client.post("/api/v1/ai/find-bugs", json={"code": "x", "language": "python"})
    assert response.status_code == 401
