import logging
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles

from . import __version__
from .settings import settings
from .routers import health, gemini

logging.basicConfig(
	level=getattr(logging, settings.log_level.upper(), logging.INFO),
	format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Math Tutor API", version=__version__)
app.add_middleware(
	CORSMiddleware,
	allow_origins=settings.cors_origin_list,
	allow_methods=["POST", "GET"],
	allow_headers=["*"],
)
app.include_router(health.router)
app.include_router(gemini.router)


@app.exception_handler(RequestValidationError)
async def invalid_body_handler(request: Request, exc: RequestValidationError):
	# The action endpoint reports a missing key before it looks at the body
	if request.url.path == "/api/gemini" and not settings.gemini_api_key:
		return gemini.error_response(500, gemini.MISSING_KEY_MESSAGE)
	# Keep the {"error": ...} body shape the action endpoint uses everywhere
	return JSONResponse(status_code=400, content={"error": "Invalid request body: expected {action, payload}"})


# Built frontend at /app (absolute path so cwd doesn't matter when launching)
if settings.frontend_dir:
	frontend_dir = Path(settings.frontend_dir).resolve()
	if frontend_dir.is_dir():
		app.mount("/app", StaticFiles(directory=frontend_dir, html=True), name="frontend")

		@app.get("/", include_in_schema=False)
		async def redirect_root_to_app():
			return RedirectResponse(url="/app")
	else:
		logger.warning("FRONTEND_DIR %s does not exist; not serving a frontend", frontend_dir)


def run() -> None:
	import uvicorn

	if not settings.gemini_api_key:
		logger.warning("GEMINI_API_KEY is not set; /api/gemini will answer with 500 until it is configured")
	uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
	run()
