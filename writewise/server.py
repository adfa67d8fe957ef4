import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from writewise.config import settings
from writewise.db.database import close_db, init_db
from writewise.routes.children import router as children_router
from writewise.routes.curriculum import router as curriculum_router
from writewise.routes.lessons import router as lessons_router
from writewise.routes.progress import router as progress_router
from writewise.services.ai_client import LLMResponseError

logger = logging.getLogger(__name__)

DEV_ORIGINS = ["http://localhost:3000", "http://127.0.0.1:3000", "http://localhost:5173"]

# error codes for refusals raised as HTTPException rather than returned as a Rejection
ERROR_CODES = {400: "bad_request", 404: "not_found", 409: "conflict"}


def allowed_origins() -> list[str]:
    origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
    return origins or DEV_ORIGINS


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    yield
    await close_db()


app = FastAPI(title="WriteWise", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins(),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "OPTIONS"],
    allow_headers=["Content-Type"],
)

app.include_router(children_router)
app.include_router(lessons_router)
app.include_router(curriculum_router)
app.include_router(progress_router)


@app.exception_handler(StarletteHTTPException)
async def http_error(request: Request, exc: StarletteHTTPException):
    """Same {error, message} body as the structured refusals."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": ERROR_CODES.get(exc.status_code, "error"), "message": exc.detail},
    )


@app.exception_handler(LLMResponseError)
async def llm_error(request: Request, exc: LLMResponseError):
    # routes map this themselves; this catches any path that doesn't
    logger.warning("Unhandled model reply error on %s: %s", request.url.path, exc)
    return JSONResponse(
        status_code=502,
        content={"error": "llm_error", "message": "Something went wrong while checking this. Please try again."},
    )


@app.get("/health")
async def health_check():
    return {"status": "ok"}
