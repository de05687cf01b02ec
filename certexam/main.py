"""
Main FastAPI application entry point.

Run with ``uvicorn certexam.main:create_app --factory``.
"""
from contextlib import asynccontextmanager
from typing import Optional
import logging
import traceback

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration
from prometheus_fastapi_instrumentator import Instrumentator

from certexam.core.cache import build_redis
from certexam.core.config import Settings, get_settings
from certexam.core.database import build_engine, build_session_factory, init_db
from certexam.core.errors import AppError
from certexam.core.logging import configure_logging
from certexam.middleware.logging import LoggingMiddleware
from certexam.middleware.rate_limit import RateLimitMiddleware
from certexam.middleware.security import SecurityHeadersMiddleware
from certexam.services.audit import AuditLog
from certexam.services.mailer import Mailer
from certexam.api.users import router as users_router
from certexam.api.assessments import router as assessments_router
from certexam.api.questions import router as questions_router
from certexam.api.admin import router as admin_router
from certexam.api.certificates import router as certificates_router
from certexam.api.security import router as security_router

logger = logging.getLogger(__name__)

def _validation_message(exc: RequestValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return "; ".join(parts) or "Invalid request"

def _error(status_code: int, message: str, stack: Optional[str] = None) -> JSONResponse:
    content = {"success": False, "message": message}
    if stack:
        content["stack"] = stack
    return JSONResponse(status_code=status_code, content=content)

def register_exception_handlers(app: FastAPI, settings: Settings) -> None:
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        return _error(exc.status_code, exc.message)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return _error(exc.status_code, str(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return _error(status.HTTP_400_BAD_REQUEST, _validation_message(exc))

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception on {request.method} {request.url.path}: {exc}", exc_info=True)
        stack = None if settings.is_production() else "".join(
            traceback.format_exception(type(exc), exc, exc.__traceback__)
        )
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal Server Error", stack)

def create_app(settings: Optional[Settings] = None, mailer: Optional[Mailer] = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings)

    if settings.SENTRY_DSN:
        sentry_sdk.init(
            dsn=settings.SENTRY_DSN,
            environment=settings.ENVIRONMENT,
            integrations=[
                FastApiIntegration(transaction_style="endpoint"),
                SqlalchemyIntegration(),
            ],
            traces_sample_rate=settings.SENTRY_TRACES_SAMPLE_RATE,
        )

    engine = build_engine(settings.DATABASE_URL, echo=settings.DATABASE_ECHO)
    session_factory = build_session_factory(engine)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Starting {settings.APP_NAME} API ({settings.ENVIRONMENT})...")
        init_db(engine)
        yield
        engine.dispose()
        logger.info("Shutdown complete")

    app = FastAPI(
        title=settings.APP_NAME,
        description=settings.APP_DESCRIPTION,
        version=settings.APP_VERSION,
        docs_url=None if settings.is_production() else "/docs",
        redoc_url=None if settings.is_production() else "/redoc",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = session_factory
    app.state.mailer = mailer or Mailer(settings, AuditLog(session_factory))

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(SecurityHeadersMiddleware, production=settings.is_production())
    app.add_middleware(LoggingMiddleware)

    if settings.RATE_LIMIT_ENABLED:
        app.add_middleware(
            RateLimitMiddleware,
            client=build_redis(settings.REDIS_URL),
            limit=settings.RATE_LIMIT_REQUESTS,
            window=settings.RATE_LIMIT_WINDOW_SECONDS,
        )

    if settings.PROMETHEUS_ENABLED:
        Instrumentator().instrument(app).expose(app, endpoint="/metrics")

    register_exception_handlers(app, settings)

    prefix = settings.API_V1_PREFIX
    app.include_router(users_router, prefix=f"{prefix}/users", tags=["users"])
    app.include_router(assessments_router, prefix=f"{prefix}/assessments", tags=["assessments"])
    app.include_router(questions_router, prefix=f"{prefix}/questions", tags=["questions"])
    app.include_router(admin_router, prefix=f"{prefix}/admin", tags=["admin"])
    app.include_router(certificates_router, prefix=f"{prefix}/certificates", tags=["certificates"])
    app.include_router(security_router, prefix=f"{prefix}/security", tags=["security"])

    @app.get("/health", tags=["Health"])
    def health():
        return {"status": "healthy"}

    @app.get("/", tags=["Health"])
    def root():
        return {"name": settings.APP_NAME, "version": settings.APP_VERSION}

    return app
