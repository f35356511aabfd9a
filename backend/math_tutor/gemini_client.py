from __future__ import annotations
import json
import httpx
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple, Union
from .settings import settings

Contents = Union[str, Dict[str, Any], List[Dict[str, Any]]]


class GeminiError(RuntimeError):
	def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
		super().__init__(message)
		self.status_code = status_code


class GeminiResponseError(GeminiError):
	"""The provider answered, but not with something we can use."""


def _error_message(response: httpx.Response) -> str:
	try:
		return str(response.json()["error"]["message"])
	except Exception:
		return response.text[:500]


def _extract_text(data: Dict[str, Any], *, strict: bool = True) -> str:
	candidates = data.get("candidates") or []
	if not candidates:
		if not strict:
			return ""
		reason = (data.get("promptFeedback") or {}).get("blockReason")
		if reason:
			raise GeminiResponseError(f"Gemini blocked the prompt: {reason}")
		raise GeminiResponseError(f"Unexpected Gemini response: {json.dumps(data)[:500]}")
	parts = (candidates[0].get("content") or {}).get("parts") or []
	# Thought summaries are not part of the answer
	return "".join(p["text"] for p in parts if "text" in p and not p.get("thought"))


async def _sse_lines(chunks: AsyncIterator[str]) -> AsyncIterator[str]:
	# Split on "\n" only: JSON may carry U+2028/U+2029/U+0085 unescaped,
	# and str.splitlines would cut a record there.
	buffer = ""
	async for chunk in chunks:
		buffer += chunk
		lines = buffer.split("\n")
		buffer = lines.pop()
		for line in lines:
			yield line
	if buffer:
		yield buffer


def _parse_sse_line(line: str) -> str:
	line = line.strip(" \t\r")
	if not line.startswith("data:"):
		return ""
	body = line[len("data:"):].strip(" \t\r")
	if not body:
		return ""
	try:
		chunk = json.loads(body)
	except ValueError as err:
		raise GeminiResponseError(f"Malformed Gemini stream record: {body[:200]}") from err
	return _extract_text(chunk, strict=False)


def _as_contents(contents: Contents) -> List[Dict[str, Any]]:
	if isinstance(contents, str):
		return [{"role": "user", "parts": [{"text": contents}]}]
	if isinstance(contents, dict):
		return [{"role": "user", **contents}]
	return list(contents)


class GeminiClient:
	def __init__(
		self,
		api_key: Optional[str] = None,
		*,
		base_url: Optional[str] = None,
		model: Optional[str] = None,
		http_client: Optional[httpx.AsyncClient] = None,
	) -> None:
		self.api_key = api_key or settings.gemini_api_key
		if not self.api_key:
			raise ValueError("GEMINI_API_KEY is not configured")
		self.model = model or settings.gemini_model
		self.provider = settings.gemini_provider
		if self.provider == "vertex":
			region = settings.vertex_region
			project = settings.vertex_project or "placeholder-project"
			# Vertex AI Generative REST endpoint (API key via header)
			self.base_url = base_url or (
				f"https://{region}-aiplatform.googleapis.com/v1/projects/{project}/locations/{region}/publishers/google/models/{self.model}"
			)
			self._auth_in_query = False
		else:
			# Google AI Studio (Generative Language API)
			self.base_url = base_url or f"https://generativelanguage.googleapis.com/v1beta/models/{self.model}"
			self._auth_in_query = True
		self._client = http_client or httpx.AsyncClient(timeout=settings.gemini_timeout_seconds)

	def _url(self, method: str) -> str:
		return f"{self.base_url}:{method}"

	def _auth(self) -> Tuple[Dict[str, str], Dict[str, str]]:
		params: Dict[str, str] = {}
		headers: Dict[str, str] = {}
		if self._auth_in_query:
			params["key"] = self.api_key
		else:
			headers["x-goog-api-key"] = self.api_key
		return params, headers

	def _build_payload(
		self,
		contents: Contents,
		*,
		system_instruction: Optional[str] = None,
		response_schema: Optional[Dict[str, Any]] = None,
	) -> Dict[str, Any]:
		payload: Dict[str, Any] = {"contents": _as_contents(contents)}
		if system_instruction:
			payload["systemInstruction"] = {"parts": [{"text": system_instruction}]}
		if response_schema is not None:
			payload["generationConfig"] = {
				"responseMimeType": "application/json",
				"responseSchema": response_schema,
			}
		return payload

	async def generate(self, prompt: str) -> str:
		return await self.generate_content(prompt)

	async def generate_content(
		self,
		contents: Contents,
		*,
		system_instruction: Optional[str] = None,
		response_schema: Optional[Dict[str, Any]] = None,
	) -> str:
		payload = self._build_payload(
			contents,
			system_instruction=system_instruction,
			response_schema=response_schema,
		)
		params, headers = self._auth()
		try:
			r = await self._client.post(self._url("generateContent"), params=params, headers=headers, json=payload)
			r.raise_for_status()
		except httpx.HTTPStatusError as http_err:
			status = http_err.response.status_code
			raise GeminiError(
				f"Gemini request failed with status {status}: {_error_message(http_err.response)}",
				status_code=status,
			) from http_err
		except httpx.RequestError as net_err:
			raise GeminiError(f"Gemini request failed: {net_err}") from net_err
		try:
			data = r.json()
		except ValueError:
			raise GeminiResponseError(f"Unexpected Gemini response: {r.text[:500]}")
		return _extract_text(data)

	async def generate_json(
		self,
		contents: Contents,
		*,
		schema: Dict[str, Any],
		system_instruction: Optional[str] = None,
	) -> Dict[str, Any]:
		text = await self.generate_content(
			contents,
			system_instruction=system_instruction,
			response_schema=schema,
		)
		try:
			data = json.loads(text.strip())
		except ValueError as err:
			raise GeminiResponseError(f"Gemini returned malformed JSON: {err}") from err
		if not isinstance(data, dict):
			raise GeminiResponseError("Gemini returned JSON that is not an object")
		return data

	async def stream_content(
		self,
		contents: Contents,
		*,
		system_instruction: Optional[str] = None,
	) -> AsyncIterator[str]:
		payload = self._build_payload(contents, system_instruction=system_instruction)
		params, headers = self._auth()
		params["alt"] = "sse"
		try:
			async with self._client.stream(
				"POST", self._url("streamGenerateContent"), params=params, headers=headers, json=payload
			) as r:
				if r.is_error:
					await r.aread()
					raise GeminiError(
						f"Gemini request failed with status {r.status_code}: {_error_message(r)}",
						status_code=r.status_code,
					)
				async for line in _sse_lines(r.aiter_text()):
					text = _parse_sse_line(line)
					if text:
						yield text
		except httpx.RequestError as net_err:
			raise GeminiError(f"Gemini request failed: {net_err}") from net_err

	async def aclose(self) -> None:
		await self._client.aclose()
