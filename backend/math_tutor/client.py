"""Client for the action endpoint.

Mirrors what the browser UI does: POST ``{action, payload}`` to ``/api/gemini``,
parse JSON answers, turn the chat body into text deltas, and fall back to
built-in content when the landing data cannot be generated.
"""

from __future__ import annotations

import codecs
import json
import logging
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Sequence

import httpx

from .schemas import ChatMessage, ChatRole, ExampleProblem, InitialData, SolutionResponse, SolveInput

logger = logging.getLogger(__name__)


FALLBACK_CONTENT: Dict[str, Dict[str, Any]] = {
	"en": {
		"examples": [
			("fallback-1", "Solve for x: 3x - 7 = 5"),
			("fallback-2", "What is the area of a circle with a radius of 5?"),
		],
		"fact": "Zero is the only integer that is neither positive nor negative.",
	},
	"ar": {
		"examples": [
			("fallback-1", "حل لـ س: 3س - 7 = 5"),
			("fallback-2", "ما هي مساحة دائرة نصف قطرها 5؟"),
		],
		"fact": "الصفر هو العدد الصحيح الوحيد الذي ليس موجبًا ولا سالبًا.",
	},
}

CHAT_ERROR_MESSAGES: Dict[str, str] = {
	"en": "Sorry, something went wrong while answering. Please try again.",
	"ar": "عذرًا، حدث خطأ أثناء الإجابة. يرجى المحاولة مرة أخرى.",
}


def fallback_initial_data(language: Optional[str]) -> InitialData:
	content = FALLBACK_CONTENT["ar" if language == "ar" else "en"]
	return InitialData(
		examples=[ExampleProblem(id=pid, problem=text) for pid, text in content["examples"]],
		fact=content["fact"],
	)


class ApiError(RuntimeError):
	def __init__(self, message: str, *, status_code: int) -> None:
		super().__init__(message)
		self.status_code = status_code


class TutorServiceError(RuntimeError):
	pass


def _parse_chat_record(line: str) -> Optional[str]:
	if not line.strip():
		return None
	try:
		record = json.loads(line)
	except ValueError:
		logger.error("Error parsing JSON chunk from stream: %r", line)
		return None
	if isinstance(record, dict) and isinstance(record.get("text"), str) and record["text"]:
		return record["text"]
	return None


async def iter_chat_records(chunks: AsyncIterator[bytes]) -> AsyncIterator[str]:
	"""Yield the text of each newline-delimited ``{"text": ...}`` record.

	Chunk boundaries may fall anywhere, including inside a multi-byte
	character, so bytes are decoded incrementally and the trailing partial
	line is held back until the next chunk arrives.
	"""
	decoder = codecs.getincrementaldecoder("utf-8")()
	buffer = ""
	async for chunk in chunks:
		buffer += decoder.decode(chunk)
		lines = buffer.split("\n")
		buffer = lines.pop()
		for line in lines:
			text = _parse_chat_record(line)
			if text:
				yield text
	buffer += decoder.decode(b"", final=True)
	text = _parse_chat_record(buffer)
	if text:
		yield text


def _problem_payload(problem: SolveInput) -> Any:
	if isinstance(problem, str):
		return problem
	return problem.model_dump(by_alias=True)


class TutorServiceClient:
	def __init__(
		self,
		base_url: str = "http://127.0.0.1:8000",
		*,
		endpoint: str = "/api/gemini",
		http_client: Optional[httpx.AsyncClient] = None,
		timeout: float = 60.0,
	) -> None:
		self.endpoint = endpoint
		self._client = http_client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

	async def post_action(self, action: str, payload: Dict[str, Any]) -> Any:
		"""POST an action; chat returns the open streaming response, the rest parsed JSON."""
		stream = action == "chat"
		request = self._client.build_request("POST", self.endpoint, json={"action": action, "payload": payload})
		response = await self._client.send(request, stream=stream)
		if response.is_error:
			if stream:
				await response.aread()
				await response.aclose()
			try:
				body = response.json()
				error = body.get("error") if isinstance(body, dict) else None
			except ValueError:
				error = "Failed to parse error response"
			raise ApiError(f"API Error: {response.reason_phrase} - {error}", status_code=response.status_code)
		if stream:
			return response
		return response.json()

	async def generate_initial_data(self, language: str) -> InitialData:
		try:
			data = await self.post_action("generateInitialData", {"language": language})
			return InitialData.model_validate(data)
		except Exception:
			logger.exception("Error generating initial data")
			return fallback_initial_data(language)

	async def solve_problem(self, problem: SolveInput, language: str) -> SolutionResponse:
		try:
			data = await self.post_action("solveProblem", {"problem": _problem_payload(problem), "language": language})
			return SolutionResponse.model_validate(data)
		except Exception as err:
			logger.exception("Error solving problem")
			raise TutorServiceError("Failed to get a valid response from the AI. Please try again.") from err

	async def stream_chat(
		self,
		history: Sequence[ChatMessage],
		message: str,
		language: str,
	) -> AsyncIterator[str]:
		payload = {
			"history": [m.model_dump(mode="json") for m in history],
			"message": message,
			"language": language,
		}
		try:
			response = await self.post_action("chat", payload)
		except Exception as err:
			logger.exception("Chat error")
			raise TutorServiceError("Failed to start chat stream.") from err
		try:
			async for text in iter_chat_records(response.aiter_bytes()):
				yield text
		finally:
			await response.aclose()

	async def aclose(self) -> None:
		await self._client.aclose()

	async def __aenter__(self) -> "TutorServiceClient":
		return self

	async def __aexit__(self, *exc_info: Any) -> None:
		await self.aclose()


class ChatSession:
	"""Follow-up conversation about a solution.

	Keeps the ordered message list the way the chat view shows it: each
	``send`` adds the user message and a model message whose text grows as
	deltas arrive.
	"""

	def __init__(self, client: TutorServiceClient, language: str = "en") -> None:
		self.client = client
		self.language = language
		self.messages: List[ChatMessage] = []
		self.streaming = False

	async def send(self, message: str, on_update: Optional[Callable[[str], None]] = None) -> ChatMessage:
		if not message.strip():
			raise ValueError("message must not be empty")
		if self.streaming:
			raise RuntimeError("a reply is still streaming")
		# Replies that never received any text are not real turns
		history = [m for m in self.messages if m.text.strip()]
		self.messages.append(ChatMessage(role=ChatRole.USER, text=message))
		reply = ChatMessage(role=ChatRole.MODEL, text="")
		self.messages.append(reply)
		self.streaming = True
		try:
			async for text in self.client.stream_chat(history, message, self.language):
				reply.text += text
				if on_update is not None:
					on_update(reply.text)
		except Exception:
			logger.exception("Chat error")
			reply.text = CHAT_ERROR_MESSAGES["ar" if self.language == "ar" else "en"]
		finally:
			self.streaming = False
		return reply

	def reset(self) -> None:
		self.messages = []
