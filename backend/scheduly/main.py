import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from scheduly.api.router import api_router
from scheduly.core.config import settings
from scheduly.core.errors import APIError
from scheduly.core.logging import configure_logging
from scheduly.services.validation import collect_error_fields

logger = logging.getLogger(__name__)


def create_application() -> FastAPI:
    configure_logging(settings.LOG_LEVEL)
    app = FastAPI(title=settings.PROJECT_NAME, version="0.1.0")

    allow_all = "*" in settings.BACKEND_CORS_ORIGINS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if allow_all else settings.BACKEND_CORS_ORIGINS,
        # Credentials cannot be combined with a wildcard origin
        allow_credentials=not allow_all,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        logger.debug(f"[REQUEST] {request.method} {request.url.path}")
        response = await call_next(request)
        logger.debug(f"[RESPONSE] {response.status_code} for {request.method} {request.url.path}")
        return response

    @app.exception_handler(APIError)
    async def api_error_handler(request: Request, exc: APIError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_payload())

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"code": exc.status_code, "message": str(exc.detail)},
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "code": status.HTTP_422_UNPROCESSABLE_ENTITY,
                "message": "Request validation failed",
                "fields": collect_error_fields(exc.errors(), fallback="body"),
            },
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled exception on {request.method} {request.url.path}: {exc}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "code": status.HTTP_500_INTERNAL_SERVER_ERROR,
                "message": "Internal server error"
                if settings.ENVIRONMENT == "production"
                else f"Internal server error: {exc}",
            },
        )

    app.include_router(api_router, prefix=settings.API_V1_STR)
    return app


app = create_application()
