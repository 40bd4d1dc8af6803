import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import models  # noqa: F401  (registers DocumentRecord on Base)
from .db import Base, SessionLocal, engine
from .errors import (
	CompletionError,
	InvalidTaskUpdate,
	JourneyError,
	NotFoundError,
	OwnershipError,
	ProgressionConflict,
	StoreError,
	VersionConflict,
)
from .routers import health, journeys, progress, questions, worksheet_analysis, worksheets
from .seed import seed_question_bank
from .settings import settings
from .store import DocumentStore

logging.basicConfig(
	level=settings.log_level.upper(),
	format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Math Journey API")
app.add_middleware(
	CORSMiddleware,
	allow_origins=settings.cors_origins,
	allow_credentials=True,
	allow_methods=["*"],
	allow_headers=["*"],
)
app.include_router(health.router)
app.include_router(journeys.router)
app.include_router(worksheets.router)
app.include_router(worksheet_analysis.router)
app.include_router(progress.router)
app.include_router(questions.router)

# Most specific class wins, so VersionConflict maps to 409 rather than StoreError's 503
_STATUS_BY_ERROR = {
	NotFoundError: 404,
	OwnershipError: 403,
	InvalidTaskUpdate: 400,
	ProgressionConflict: 409,
	VersionConflict: 409,
	CompletionError: 502,
	StoreError: 503,
	JourneyError: 500,
}


def _error_handler(status_code: int):
	async def handle(request: Request, exc: Exception) -> JSONResponse:
		if status_code >= 500:
			logger.error("%s %s failed: %s", request.method, request.url.path, exc)
		return JSONResponse(status_code=status_code, content={"success": False, "message": str(exc)})
	return handle


for _error, _status in _STATUS_BY_ERROR.items():
	app.add_exception_handler(_error, _error_handler(_status))


@app.get("/info")
def root():
	return {
		"status": "ok",
		"gemini_configured": bool(settings.gemini_api_key),
		"fallback_configured": bool(settings.openrouter_api_key),
	}


@app.on_event("startup")
async def startup_event():
	# Initialize DB schema
	Base.metadata.create_all(bind=engine)
	if settings.question_bank_path:
		db = SessionLocal()
		try:
			seed_question_bank(DocumentStore(db), settings.question_bank_path)
		except (OSError, ValueError, StoreError):
			logger.exception("Seeding from %s failed", settings.question_bank_path)
		finally:
			db.close()
