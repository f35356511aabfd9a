from __future__ import annotations

from typing import Any, Dict, List, Optional

import pytest

from math_tutor.gemini_client import GeminiError
from math_tutor.main import app
from math_tutor.routers.gemini import get_tutor_factory
from math_tutor.schemas import ExampleProblem, InitialData, SolutionResponse
from math_tutor.settings import settings


SOLUTION = {
	"status": "solved",
	"title": "Linear equation",
	"classification": "Algebra",
	"difficulty": "Easy",
	"difficultyRating": 2,
	"difficultyJustification": "One step of isolation.",
	"keyConcepts": ["Linear equations"],
	"reasoning": "Add 7 to both sides, then divide by 3.",
	"solution": ["3x = 12", "x = 4"],
	"explanation": "x equals 4.",
	"alternativeMethods": None,
	"commonPitfalls": "Forgetting to divide both sides.",
}


def gemini_reply(text: str) -> Dict[str, Any]:
	return {"candidates": [{"content": {"role": "model", "parts": [{"text": text}]}}]}


@pytest.fixture(autouse=True)
def configured_key(monkeypatch):
	monkeypatch.setattr(settings, "gemini_api_key", "test-key")
	monkeypatch.setattr(settings, "gemini_provider", "ai_studio")
	monkeypatch.setattr(settings, "gemini_model", "gemini-2.5-flash")


class FakeTutor:
	"""Stands in for MathTutor behind the action endpoint."""

	def __init__(
		self,
		*,
		chat_deltas: Optional[List[str]] = None,
		fail_with: Optional[Exception] = None,
		fail_chat_after: Optional[int] = None,
	) -> None:
		self.chat_deltas = chat_deltas if chat_deltas is not None else ["Sure", ", x = ", "4."]
		self.fail_with = fail_with
		self.fail_chat_after = fail_chat_after
		self.calls: List[tuple] = []
		self.closed = False

	async def generate_initial_data(self, language):
		self.calls.append(("generateInitialData", language))
		if self.fail_with:
			raise self.fail_with
		return InitialData(
			examples=[ExampleProblem(id="p1", problem="2 + 2 = ?"), ExampleProblem(id="p2", problem="Solve x^2 = 9")],
			fact="A circle has infinitely many lines of symmetry.",
		)

	async def solve_problem(self, problem, language):
		self.calls.append(("solveProblem", problem, language))
		if self.fail_with:
			raise self.fail_with
		return SolutionResponse.model_validate(SOLUTION)

	async def stream_chat(self, history, message, language):
		self.calls.append(("chat", list(history), message, language))
		if self.fail_with:
			raise self.fail_with
		for i, text in enumerate(self.chat_deltas):
			if self.fail_chat_after is not None and i == self.fail_chat_after:
				raise GeminiError("upstream dropped the stream")
			yield text

	async def aclose(self):
		self.closed = True


@pytest.fixture
def fake_tutor():
	tutor = FakeTutor()
	app.dependency_overrides[get_tutor_factory] = lambda: (lambda: tutor)
	yield tutor
	app.dependency_overrides.clear()


@pytest.fixture
def use_tutor():
	def install(tutor: FakeTutor) -> FakeTutor:
		app.dependency_overrides[get_tutor_factory] = lambda: (lambda: tutor)
		return tutor

	yield install
	app.dependency_overrides.clear()
