from __future__ import annotations
import json
import logging
from typing import AsyncIterator, Callable, Dict, Optional, Type

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, ValidationError

from ..schemas import ActionRequest, ChatPayload, InitialDataPayload, SolvePayload
from ..settings import settings
from ..tutor import MathTutor

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["gemini"])


ACTION_PAYLOADS: Dict[str, Type[BaseModel]] = {
	"generateInitialData": InitialDataPayload,
	"solveProblem": SolvePayload,
	"chat": ChatPayload,
}


MISSING_KEY_MESSAGE = "API_KEY is not configured on the server."


def get_tutor_factory()-> Callable[[], MathTutor]:
	return MathTutor.from_settings


def error_response(status_code: int, message: str, headers: Optional[Dict[str, str]] = None) -> JSONResponse:
	return JSONResponse(status_code=status_code, content={"error": message}, headers=headers)


def _validation_summary(err: ValidationError) -> str:
	return "; ".join(
		f"{'.'.join(str(p) for p in e['loc']) or 'payload'}: {e['msg']}" for e in err.errors()
	)


def _chat_record(text: str) -> str:
	return json.dumps({"text": text}, ensure_ascii=False) + "\n"


async def _chat_response(tutor: MathTutor, payload: ChatPayload) -> StreamingResponse:
	deltas = tutor.stream_chat(payload.history, payload.message, payload.language)
	# Pull the first delta before committing to a 200 so that upstream
	# failures still surface as a JSON error.
	try:
		first: Optional[str] = await deltas.__anext__()
	except StopAsyncIteration:
		first = None

	async def relay() -> AsyncIterator[str]:
		try:
			if first is not None:
				yield _chat_record(first)
			async for text in deltas:
				yield _chat_record(text)
		except Exception:
			# Headers are already sent; ending the body is all that is left
			logger.exception("Chat stream aborted after it started")
		finally:
			await deltas.aclose()
			await tutor.aclose()

	return StreamingResponse(relay(), media_type="text/plain")


@router.api_route("/gemini", methods=["GET", "HEAD", "PUT", "PATCH", "DELETE", "OPTIONS"], include_in_schema=False)
async def method_not_allowed():
	return error_response(405, "Method Not Allowed", headers={"Allow": "POST"})


@router.post("/gemini")
async def dispatch(req: ActionRequest, tutor_factory: Callable[[], MathTutor] = Depends(get_tutor_factory)):
	if not settings.gemini_api_key:
		return error_response(500, MISSING_KEY_MESSAGE)
	action = req.action
	payload_model = ACTION_PAYLOADS.get(action)
	if payload_model is None:
		return error_response(400, "Invalid action")
	try:
		payload = payload_model.model_validate(req.payload)
	except ValidationError as err:
		return error_response(400, f"Invalid payload: {_validation_summary(err)}")

	tutor: Optional[MathTutor] = None
	streaming = False
	try:
		tutor = tutor_factory()
		if action == "generateInitialData":
			data = await tutor.generate_initial_data(payload.language)
			return data.model_dump()
		if action == "solveProblem":
			solution = await tutor.solve_problem(payload.problem, payload.language)
			return solution.model_dump(by_alias=True)
		response = await _chat_response(tutor, payload)
		# The stream now owns the tutor and closes it when the body ends
		streaming = True
		return response
	except Exception as e:
		logger.exception("Error in action '%s'", action)
		return error_response(500, f"An internal server error occurred: {e}")
	finally:
		if tutor is not None and not streaming:
			await tutor.aclose()
