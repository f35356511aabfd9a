from __future__ import annotations

import json

import httpx
import pytest

from math_tutor.gemini_client import GeminiClient, GeminiError, GeminiResponseError
from math_tutor.schemas import MATH_FACT_SCHEMA
from math_tutor.settings import settings

from .conftest import gemini_reply


def make_client(handler, **kwargs) -> GeminiClient:
	return GeminiClient(http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)), **kwargs)


@pytest.mark.asyncio
async def test_generate_json_sends_schema_and_parses_reply():
	seen = {}

	def handler(request: httpx.Request) -> httpx.Response:
		seen["url"] = request.url
		seen["body"] = json.loads(request.content)
		return httpx.Response(200, json=gemini_reply('  {"fact": "Pi is irrational."}\n'))

	client = make_client(handler)
	data = await client.generate_json("Give me a fact", schema=MATH_FACT_SCHEMA, system_instruction="Be brief.")
	await client.aclose()

	assert data == {"fact": "Pi is irrational."}
	assert seen["url"].path == "/v1beta/models/gemini-2.5-flash:generateContent"
	assert seen["url"].params["key"] == "test-key"
	body = seen["body"]
	assert body["contents"] == [{"role": "user", "parts": [{"text": "Give me a fact"}]}]
	assert body["systemInstruction"] == {"parts": [{"text": "Be brief."}]}
	assert body["generationConfig"]["responseMimeType"] == "application/json"
	assert body["generationConfig"]["responseSchema"] == MATH_FACT_SCHEMA


@pytest.mark.asyncio
async def test_malformed_json_is_a_hard_failure():
	client = make_client(lambda request: httpx.Response(200, json=gemini_reply("Here you go: {fact")))
	with pytest.raises(GeminiResponseError):
		await client.generate_json("x", schema=MATH_FACT_SCHEMA)


@pytest.mark.asyncio
async def test_json_array_is_rejected():
	client = make_client(lambda request: httpx.Response(200, json=gemini_reply("[1, 2]")))
	with pytest.raises(GeminiResponseError, match="not an object"):
		await client.generate_json("x", schema=MATH_FACT_SCHEMA)


@pytest.mark.asyncio
async def test_http_error_carries_upstream_message():
	def handler(request):
		return httpx.Response(400, json={"error": {"code": 400, "message": "API key not valid."}})

	client = make_client(handler)
	with pytest.raises(GeminiError) as excinfo:
		await client.generate("hello")
	assert excinfo.value.status_code == 400
	assert "API key not valid." in str(excinfo.value)


@pytest.mark.asyncio
async def test_network_error_becomes_gemini_error():
	def handler(request):
		raise httpx.ConnectError("connection refused", request=request)

	client = make_client(handler)
	with pytest.raises(GeminiError, match="connection refused"):
		await client.generate("hello")


@pytest.mark.asyncio
async def test_blocked_prompt_is_reported():
	client = make_client(lambda request: httpx.Response(200, json={"promptFeedback": {"blockReason": "SAFETY"}}))
	with pytest.raises(GeminiResponseError, match="SAFETY"):
		await client.generate("hello")


@pytest.mark.asyncio
async def test_thought_parts_are_dropped():
	reply = {"candidates": [{"content": {"parts": [{"text": "thinking...", "thought": True}, {"text": "42"}]}}]}
	client = make_client(lambda request: httpx.Response(200, json=reply))
	assert await client.generate("6 * 7?") == "42"


@pytest.mark.asyncio
async def test_stream_content_reads_sse_records():
	seen = {}
	records = [gemini_reply("Hel"), {"candidates": []}, gemini_reply("lo"), gemini_reply("")]
	body = "".join(f"data: {json.dumps(r)}\r\n\r\n" for r in records).encode()

	def handler(request):
		seen["url"] = request.url
		seen["body"] = json.loads(request.content)
		return httpx.Response(200, content=body, headers={"content-type": "text/event-stream"})

	client = make_client(handler)
	contents = [
		{"role": "user", "parts": [{"text": "hi"}]},
		{"role": "model", "parts": [{"text": "hello"}]},
		{"role": "user", "parts": [{"text": "say hello again"}]},
	]
	deltas = [d async for d in client.stream_content(contents, system_instruction="Tutor.")]

	assert deltas == ["Hel", "lo"]
	assert seen["url"].path.endswith(":streamGenerateContent")
	assert seen["url"].params["alt"] == "sse"
	assert seen["body"]["contents"] == contents
	assert "generationConfig" not in seen["body"]


@pytest.mark.asyncio
async def test_stream_error_status_raises_before_any_delta():
	client = make_client(lambda request: httpx.Response(503, json={"error": {"message": "overloaded"}}))
	with pytest.raises(GeminiError, match="overloaded") as excinfo:
		async for _ in client.stream_content("hi"):
			pass
	assert excinfo.value.status_code == 503


@pytest.mark.asyncio
async def test_vertex_sends_key_in_header(monkeypatch):
	monkeypatch.setattr(settings, "gemini_provider", "vertex")
	monkeypatch.setattr(settings, "vertex_project", "demo")
	seen = {}

	def handler(request):
		seen["url"] = request.url
		seen["headers"] = request.headers
		return httpx.Response(200, json=gemini_reply("ok"))

	client = make_client(handler)
	assert await client.generate("ping") == "ok"
	assert seen["url"].host == "us-central1-aiplatform.googleapis.com"
	assert "/projects/demo/" in seen["url"].path
	assert "key" not in seen["url"].params
	assert seen["headers"]["x-goog-api-key"] == "test-key"


def test_missing_key_is_rejected(monkeypatch):
	monkeypatch.setattr(settings, "gemini_api_key", None)
	with pytest.raises(ValueError):
		GeminiClient()


@pytest.mark.asyncio
async def test_stream_records_keep_unicode_line_separators():
	text = "first\u2028second\u2029third\u0085end"
	body = f"data: {json.dumps(gemini_reply(text), ensure_ascii=False)}\n\n".encode("utf-8")

	def handler(request):
		return httpx.Response(200, content=body, headers={"content-type": "text/event-stream; charset=utf-8"})

	client = make_client(handler)
	deltas = [d async for d in client.stream_content("hi")]
	assert deltas == [text]
