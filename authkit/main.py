import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .auth.dependencies import AuthComponents
from .auth.errors import AuthError, TooManyAttempts
from .auth.notifier import Notifier
from .auth.service import init_auth_storage
from .auth.throttling import LoginRateLimiter, reset_login_rate_limiter
from .auth.tokens import Clock
from .config import AuthConfig, settings
from .routes import router as auth_router

logger = logging.getLogger(__name__)


def create_app(
    config: Optional[AuthConfig] = None,
    *,
    notifier: Optional[Notifier] = None,
    limiter: Optional[LoginRateLimiter] = None,
    clock: Optional[Clock] = None,
) -> FastAPI:
    config = config or AuthConfig.from_settings()
    components = AuthComponents.build(config, notifier=notifier, limiter=limiter, clock=clock)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logging.basicConfig(level=settings.LOG_LEVEL.upper())
        init_auth_storage(config)
        reset_login_rate_limiter(limiter)
        logger.info("Authentication service ready")
        yield

    app = FastAPI(title="authkit", version="1.0", lifespan=lifespan)
    app.state.auth = components

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE"],
        allow_headers=["Content-Type"],
    )

    @app.exception_handler(AuthError)
    async def _handle_auth_error(_request: Request, exc: AuthError) -> JSONResponse:
        headers = None
        if isinstance(exc, TooManyAttempts):
            headers = {"Retry-After": str(exc.retry_after)}
        return JSONResponse(
            status_code=exc.status_code,
            content={"message": exc.detail},
            headers=headers,
        )

    @app.exception_handler(RequestValidationError)
    async def _handle_invalid_body(_request: Request, exc: RequestValidationError) -> JSONResponse:
        first = exc.errors()[0] if exc.errors() else {}
        field = ".".join(str(part) for part in first.get("loc", ())[1:]) or "body"
        return JSONResponse(
            status_code=400,
            content={"message": f"Invalid {field}: {first.get('msg', 'malformed request')}"},
        )

    app.include_router(auth_router)

    @app.get("/health", include_in_schema=False)
    def health() -> dict:
        return {"status": "ok"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("authkit.main:app", host="0.0.0.0", port=8000)
