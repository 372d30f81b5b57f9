from contextlib import asynccontextmanager
from datetime import datetime, timezone

import redis
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse
from loguru import logger

from support_chat.api.chat import router as chat_router
from support_chat.api.dependencies import ChatServices
from support_chat.api.rate_limiter import RateLimiter, RateLimitExceeded
from support_chat.api.validation import MessageValidationError
from support_chat.config.settings import Settings, get_settings
from support_chat.core.errors import StoreFailure
from support_chat.core.logger import setup_logger
from support_chat.core.memory_metrics import log_memory_counters_snapshot
from support_chat.core.turn_orchestrator import TurnOrchestrator
from support_chat.db.conversation_repository import SqlConversationStore
from support_chat.db.message_repository import SqlMessageStore
from support_chat.db.session import create_db_engine, create_session_factory, init_db
from support_chat.services.llm.gateway import PydanticAIGateway
from support_chat.services.llm.model import get_model


def build_services(settings: Settings) -> ChatServices:
    """Wire stores, gateway and orchestrator from settings."""
    engine = create_db_engine(settings.database_url)
    init_db(engine)
    session_factory = create_session_factory(engine)

    api_key = settings.openai_api_key if settings.llm_provider == "openai" else settings.gemini_api_key
    gateway = PydanticAIGateway(get_model(settings.llm_provider, settings.llm_model, api_key))

    orchestrator = TurnOrchestrator(
        conversation_store=SqlConversationStore(session_factory),
        message_store=SqlMessageStore(session_factory),
        gateway=gateway,
    )

    redis_client = redis.from_url(settings.redis_url, decode_responses=True)
    rate_limiter = RateLimiter(
        redis_client,
        ip_limit=settings.rate_limit_ip_per_minute,
        session_limit=settings.rate_limit_session_per_minute,
    )
    logger.info(
        "Chat services initialized",
        llm_provider=settings.llm_provider,
        llm_model=settings.llm_model,
    )
    return ChatServices(
        settings=settings,
        orchestrator=orchestrator,
        rate_limiter=rate_limiter,
        redis_client=redis_client,
    )


def _error_body(error: str, message: str, **extra) -> dict:
    return {"error": error, "message": message, **extra}


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(MessageValidationError)
    async def handle_message_validation(_request: Request, exc: MessageValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content=_error_body("Validation error", str(exc)))

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(_request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = exc.errors()
        message = errors[0].get("msg", "Invalid input") if errors else "Invalid input"
        return JSONResponse(status_code=400, content=_error_body("Validation error", message))

    @app.exception_handler(RateLimitExceeded)
    async def handle_rate_limit(_request: Request, exc: RateLimitExceeded) -> JSONResponse:
        return JSONResponse(
            status_code=429,
            content=_error_body("Too many requests", exc.message, retryAfter=exc.retry_after),
            headers={"Retry-After": str(exc.retry_after)},
        )

    @app.exception_handler(StoreFailure)
    async def handle_store_failure(_request: Request, exc: StoreFailure) -> JSONResponse:
        logger.error(f"Store failure during {exc.operation}: {exc.message}")
        return JSONResponse(
            status_code=503,
            content=_error_body("Service unavailable", "Chat storage is temporarily unavailable. Please try again later."),
        )

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
        logger.opt(exception=exc).error(f"Unhandled error on {request.method} {request.url.path}: {exc}")
        settings: Settings = request.app.state.services.settings
        extra = {} if settings.is_production else {"details": str(exc)}
        return JSONResponse(
            status_code=500,
            content=_error_body(
                "Internal server error",
                "An unexpected error occurred. Please try again later.",
                **extra,
            ),
        )


def create_app(services: ChatServices | None = None) -> FastAPI:
    """Build the FastAPI application.

    Args:
        services: Pre-wired services (tests); built from environment settings when None
    """
    if services is None:
        settings = get_settings()
        setup_logger(level=settings.log_level, json_logs=settings.is_production, log_file=settings.log_file)
        services = build_services(settings)

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        logger.info("Support chat API starting", environment=services.settings.environment)
        yield
        log_memory_counters_snapshot()
        logger.info("Support chat API stopped")

    app = FastAPI(title="Support Chat", lifespan=lifespan)
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[services.settings.frontend_url],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(chat_router)
    _register_exception_handlers(app)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log all HTTP requests."""
        logger.debug(f"Request: {request.method} {request.url.path}")
        response = await call_next(request)
        logger.debug(f"Response: {response.status_code} for {request.method} {request.url.path}")
        return response

    @app.get("/health")
    def health() -> JSONResponse:
        timestamp = datetime.now(timezone.utc).isoformat()
        try:
            services.redis_client.ping()
        except redis.RedisError as e:
            logger.warning(f"Health check failed, Redis unreachable: {e}")
            return JSONResponse(
                status_code=503,
                content={
                    "status": "error",
                    "service": "support-chat-api",
                    "redis": {"connected": False, "error": str(e)},
                    "timestamp": timestamp,
                },
            )
        return JSONResponse(
            content={
                "status": "ok",
                "service": "support-chat-api",
                "redis": {"connected": True},
                "timestamp": timestamp,
            }
        )

    @app.get("/", response_class=HTMLResponse)
    def root():
        return """
        <html>
            <head>
                <title>Support Chat</title>
            </head>
            <body>
                <h1>Support Chat</h1>
                <p>Customer support chat API</p>
                <h2>Available Endpoints:</h2>
                <ul>
                    <li><a href="/docs">API Documentation (Swagger)</a></li>
                    <li><a href="/health">Health</a></li>
                </ul>
            </body>
        </html>
        """

    logger.info("FastAPI application initialized")
    return app
