import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from chatbot.config import get_settings
from chatbot.core.redis import close_redis, connect_redis
from chatbot.database import init_db
from chatbot.exceptions import ChatbotError
from chatbot.routers import auth, chat
from chatbot.services.ai_service import build_ai_client

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    app.state.ai_client = build_ai_client(settings)
    app.state.redis = await connect_redis(settings)
    try:
        yield
    finally:
        await close_redis(app.state.redis)
        app.state.redis = None


app = FastAPI(title="AI Chatbot API", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials="*" not in settings.cors_origins,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
)

app.include_router(auth.router)
app.include_router(chat.router)


def _error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "message": message})


@app.exception_handler(ChatbotError)
async def chatbot_error_handler(request: Request, exc: ChatbotError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return _error_response(exc.status_code, exc.message)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    return _error_response(400, message)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error_response(500, "Server Error")


@app.get("/")
def root():
    return {"message": "AI Chatbot API is running", "docs": "/docs"}


@app.get("/health")
async def health(request: Request):
    """AI client state and Redis status (optional). DB not checked here."""
    ai_client = getattr(request.app.state, "ai_client", None)
    redis_client = getattr(request.app.state, "redis", None)
    redis_status = "unavailable"
    if redis_client is not None:
        try:
            await redis_client.ping()
            redis_status = "ok"
        except Exception as e:
            logger.warning("Redis health ping failed: %s", e)
            redis_status = "error"
    return {
        "status": "ok",
        "ai": "configured" if ai_client is not None and ai_client.is_configured else "not_configured",
        "redis": redis_status,
    }


def run() -> None:
    uvicorn.run("chatbot.main:app", host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
