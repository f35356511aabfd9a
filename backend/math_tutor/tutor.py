"""Tutor operations on top of the Gemini client.

Three operations back the action endpoint:

- ``generate_initial_data``: example problems and a math fact for the landing view
- ``solve_problem``: classify, solve and explain a text or image problem
- ``stream_chat``: follow-up conversation, streamed as text deltas

Every JSON-producing call hands the provider a strict output schema and treats
output that does not match it as a hard failure.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

from pydantic import ValidationError

from .gemini_client import GeminiClient, GeminiResponseError
from .prompts import (
	CHAT_SYSTEM_INSTRUCTION,
	SOLVER_SYSTEM_INSTRUCTION,
	example_problems_prompt,
	math_fact_prompt,
	with_language,
)
from .schemas import (
	EXAMPLE_PROBLEMS_SCHEMA,
	MATH_FACT_SCHEMA,
	SOLUTION_RESPONSE_SCHEMA,
	ChatMessage,
	ExampleProblem,
	ImageProblem,
	InitialData,
	SolutionResponse,
	SolveInput,
	language_name,
)

logger = logging.getLogger(__name__)


def problem_contents(problem: SolveInput) -> Any:
	if isinstance(problem, str):
		return problem
	image_part = {"inlineData": {"mimeType": problem.image.mime_type, "data": problem.image.data}}
	parts: List[Dict[str, Any]] = [image_part]
	# Gemini rejects parts without data, so an empty note is left out
	if problem.prompt.strip():
		parts.append({"text": problem.prompt})
	return {"parts": parts}


def history_contents(history: Sequence[ChatMessage], message: str) -> List[Dict[str, Any]]:
	contents = [
		{"role": msg.role.value, "parts": [{"text": msg.text}]}
		for msg in history
		if msg.text.strip()
	]
	contents.append({"role": "user", "parts": [{"text": message}]})
	return contents


class MathTutor:
	def __init__(self, client: GeminiClient) -> None:
		self.client = client

	@classmethod
	def from_settings(cls) -> "MathTutor":
		return cls(GeminiClient())

	async def generate_initial_data(self, language: Optional[str]) -> InitialData:
		lang_name = language_name(language)
		examples_task = asyncio.ensure_future(
			self.client.generate_json(example_problems_prompt(lang_name), schema=EXAMPLE_PROBLEMS_SCHEMA)
		)
		fact_task = asyncio.ensure_future(
			self.client.generate_json(math_fact_prompt(lang_name), schema=MATH_FACT_SCHEMA)
		)
		try:
			examples_raw, fact_raw = await asyncio.gather(examples_task, fact_task)
		except BaseException:
			# Both calls succeed or fail together; never leave one running
			for task in (examples_task, fact_task):
				task.cancel()
			await asyncio.gather(examples_task, fact_task, return_exceptions=True)
			raise
		try:
			examples = [ExampleProblem.model_validate(p) for p in examples_raw["problems"]]
			fact = fact_raw["fact"]
			if not isinstance(fact, str):
				raise TypeError("fact must be a string")
		except (KeyError, TypeError, ValidationError) as err:
			raise GeminiResponseError(f"Gemini returned data that does not match the schema: {err}") from err
		logger.debug("Generated %d example problems (%s)", len(examples), lang_name)
		return InitialData(examples=examples, fact=fact)

	async def solve_problem(self, problem: SolveInput, language: Optional[str]) -> SolutionResponse:
		lang_name = language_name(language)
		data = await self.client.generate_json(
			problem_contents(problem),
			schema=SOLUTION_RESPONSE_SCHEMA,
			system_instruction=with_language(SOLVER_SYSTEM_INSTRUCTION, lang_name),
		)
		try:
			solution = SolutionResponse.model_validate(data)
		except ValidationError as err:
			raise GeminiResponseError(f"Gemini returned a solution that does not match the schema: {err}") from err
		logger.info(
			"Solved %s problem: status=%s classification=%s",
			"image" if isinstance(problem, ImageProblem) else "text",
			solution.status,
			solution.classification,
		)
		return solution

	async def stream_chat(
		self,
		history: Sequence[ChatMessage],
		message: str,
		language: Optional[str],
	) -> AsyncIterator[str]:
		system_instruction = with_language(CHAT_SYSTEM_INSTRUCTION, language_name(language))
		async for text in self.client.stream_content(
			history_contents(history, message),
			system_instruction=system_instruction,
		):
			yield text

	async def aclose(self) -> None:
		await self.client.aclose()
