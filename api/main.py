import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request

from api.di.container import ApplicationContainer as DependencyContainer
from api.shared.dtos import ErrorResponse
from api.shared.exceptions import NyaAIException
from core.logging import configure_logging
from core.settings import SETTINGS

configure_logging(SETTINGS.APP)

logger = logging.getLogger("nyaai")


class CustomFastAPI(FastAPI):
    container: DependencyContainer


@asynccontextmanager
async def lifespan(_app: CustomFastAPI):
    logger.info("Starting application initialization...")
    start_time = time.time()

    try:
        logger.info("Initializing database connection...")
        db_start = time.time()
        db_resource = _app.container.infrastructure.database()
        await db_resource.init()
        # Verify database connection
        await db_resource.ping()
        logger.info(
            f"Database connection established in {time.time() - db_start:.2f}s"
        )

        logger.info("Initializing HTTP client...")
        http_resource = _app.container.infrastructure.http_client()
        await http_resource.init()

        logger.info(
            f"Application startup completed in {time.time() - start_time:.2f}s"
        )
    except Exception as e:
        logger.exception(f"Failed to initialize application: {str(e)}")
        raise

    yield

    try:
        http_resource = _app.container.infrastructure.http_client()
        if http_resource:
            await http_resource.shutdown()
        db_resource = _app.container.infrastructure.database()
        if db_resource:
            await db_resource.shutdown()
        logger.info("Application shutdown complete")
    except Exception:
        logger.exception("Error during shutdown")


def _error_body(
    message: str, code: str, exc: NyaAIException | None = None
) -> dict:
    body = ErrorResponse(error=message, code=code)
    if exc is not None:
        if "message_saved" in exc.details:
            body.message_saved = bool(exc.details["message_saved"])
        if exc.details.get("session_id"):
            body.session_id = str(exc.details["session_id"])
    return body.model_dump(by_alias=True, exclude_none=True)


def create_fastapi_app(container: DependencyContainer | None = None) -> CustomFastAPI:
    _app = CustomFastAPI(
        title="NyaAI Chat API",
        description="Conversational legal assistant backed by an LLM provider",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Initialize dependency container
    _app.container = container or DependencyContainer()
    _app.container.infrastructure.config.from_dict(SETTINGS.model_dump(mode="json"))
    _app.container.init_resources()

    _app.add_middleware(
        CORSMiddleware,
        allow_origins=SETTINGS.APP.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include feature routers
    from api.features.chat.router import router as chat_router

    _app.include_router(chat_router, prefix="/api/v1/chat", tags=["Chat"])
    _app.include_router(chat_router, prefix="/chat", include_in_schema=False)

    @_app.get("/")
    async def root():
        return {"message": "NyaAI Chat API is running", "status": "ok"}

    @_app.get("/health")
    async def health():
        return {"status": "ok"}

    @_app.get("/ready")
    async def ready():
        return {"status": "ok"}

    @_app.exception_handler(NyaAIException)
    async def nyaai_exception_handler(request: Request, exc: NyaAIException):
        if exc.status_code >= 500:
            logger.error(
                f"{exc.error_code} on {request.url.path}: {exc.message} "
                f"(details={exc.details})"
            )
        else:
            logger.info(f"{exc.error_code} on {request.url.path}: {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(exc.client_message, exc.error_code, exc),
        )

    @_app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        message = "Invalid request"
        if errors:
            first = errors[0]
            location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
            if first.get("type") == "value_error" and first.get("ctx", {}).get("error"):
                # Field validators already phrase the message for the caller
                message = str(first["ctx"]["error"])
            elif location:
                message = f"{location}: {first.get('msg')}"
            else:
                message = str(first.get("msg"))
        return JSONResponse(
            status_code=400,
            content=_error_body(message, "VALIDATION_ERROR"),
        )

    @_app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(str(exc.detail), "HTTP_ERROR"),
            headers=getattr(exc, "headers", None),
        )

    @_app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled exception on {request.url.path}")
        return JSONResponse(
            status_code=500,
            content=_error_body("Internal server error", "INTERNAL_ERROR"),
        )

    return _app


app = create_fastapi_app()
