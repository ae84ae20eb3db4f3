import logging
from contextlib import asynccontextmanager
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

from fastapi import Depends, FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .agent import SessionController
from .errors import StorageError, ValidationError
from .services.llm import OpenAIGenerator
from .services.session_store import close_session_store, get_session_store_async
from .settings import get_settings

MAX_SESSION_ID_CHARS = 128
MAX_MESSAGE_CHARS = 4000


def setup_server_logging(level: str = "INFO") -> logging.Logger:
    """Configure the package logger (console + rotating file) and return the server logger."""
    logs_dir = Path("logs")
    logs_dir.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger("pocketsre")
    logger = logging.getLogger("pocketsre.server")
    if root.handlers:
        return logger

    root.setLevel(level)
    fmt = logging.Formatter("%(asctime)s %(levelname)s %(name)s - %(message)s")

    ch = logging.StreamHandler()
    ch.setFormatter(fmt)
    root.addHandler(ch)

    fh = RotatingFileHandler(logs_dir / "server.log", maxBytes=5_000_000, backupCount=3)
    fh.setFormatter(fmt)
    root.addHandler(fh)

    return logger


def _cors_origins_list(origins: str) -> list[str]:
    """Parse CORS_ORIGINS into a list."""
    if not origins or origins.strip() == "*":
        return ["*"]
    return [o.strip() for o in origins.split(",") if o.strip()]


def _error(status_code: int, error: str, details: str | None = None) -> JSONResponse:
    body: dict[str, Any] = {"error": error}
    if details is not None:
        body["details"] = details
    return JSONResponse(body, status_code=status_code)


def parse_chat_request(payload: Any) -> tuple[str, str]:
    """Validate a chat body and return (session_id, message), both trimmed.

    Raises:
        ValidationError: sessionId or message is missing, blank or too long.
    """
    data = payload if isinstance(payload, dict) else {}
    session_id = data.get("sessionId")
    session_id = session_id.strip() if isinstance(session_id, str) else ""
    message = data.get("message")
    message = message.strip() if isinstance(message, str) else ""

    if not session_id or len(session_id) > MAX_SESSION_ID_CHARS:
        raise ValidationError("Invalid sessionId")
    if not message or len(message) > MAX_MESSAGE_CHARS:
        raise ValidationError("Invalid message")
    return session_id, message


settings = get_settings()
LOGGER = setup_server_logging(settings.log_level)

_controller: SessionController | None = None


async def get_controller() -> SessionController:
    """Return the process-wide session controller, building it on first use."""
    global _controller
    if _controller is None:
        store = await get_session_store_async()
        _controller = SessionController(
            generator=OpenAIGenerator(settings),
            store=store,
            system_prompt=settings.system_prompt,
            debug=settings.debug,
        )
    return _controller


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Connect the session store at startup; close it on shutdown."""
    global _controller
    await get_controller()
    LOGGER.info("Session controller ready (model=%s)", settings.model)

    yield

    LOGGER.info("Shutting down...")
    _controller = None
    await close_session_store()


app = FastAPI(
    title="Pocket SRE",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins_list(settings.cors_origins),
    allow_credentials=False,
    allow_methods=["POST", "OPTIONS"],
    allow_headers=["Content-Type"],
)


@app.middleware("http")
async def preflight_no_content(request: Request, call_next):
    """Answer successful CORS preflights with 204 instead of 200 'OK'."""
    response = await call_next(request)
    if request.method == "OPTIONS" and response.status_code == 200:
        headers = {
            k: v
            for k, v in response.headers.items()
            if k.lower() not in ("content-length", "content-type")
        }
        return Response(status_code=204, headers=headers)
    return response


@app.exception_handler(StarletteHTTPException)
async def http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return _error(exc.status_code, str(exc.detail))


@app.get("/health")
async def health() -> dict[str, Any]:
    """Health check for load balancers and monitoring."""
    return {"status": "ok"}


@app.options("/api/chat")
async def chat_options() -> Response:
    return Response(status_code=204)


@app.post("/api/chat")
async def chat(
    request: Request,
    controller: SessionController = Depends(get_controller),
) -> JSONResponse:
    """Run one turn: body { sessionId, message } -> { reply, profile }.

    Error responses are { error, details? } with 400 for bad input and 502
    when session state cannot be loaded or saved.
    """
    if "application/json" not in request.headers.get("content-type", ""):
        return _error(400, "Invalid JSON request body", "Expected application/json")
    try:
        payload = await request.json()
    except ValueError as e:
        return _error(400, "Invalid JSON request body", str(e))

    try:
        session_id, message = parse_chat_request(payload)
    except ValidationError as e:
        return _error(400, str(e))

    try:
        turn = await controller.handle_turn(session_id, message)
    except ValidationError as e:
        return _error(400, str(e))
    except StorageError as e:
        LOGGER.exception("Session storage failed session_id=%s: %s", session_id, e)
        return _error(502, "Session storage error", str(e))
    except Exception as e:
        LOGGER.exception("Session handler failed session_id=%s: %s", session_id, e)
        return _error(502, "Session handler error", str(e))

    return JSONResponse(turn.to_dict())


def run() -> None:
    import uvicorn

    uvicorn.run(app, host=settings.host, port=settings.port)
