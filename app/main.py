"""FastAPI 애플리케이션 진입점."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.openapi.docs import get_redoc_html, get_swagger_ui_html
from fastapi.responses import JSONResponse, Response
from starlette.middleware.cors import CORSMiddleware
from starlette.middleware.trustedhost import TrustedHostMiddleware
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from app.api import chat, sync
from app.api.dependencies import require_service_secret, shutdown_pipeline
from app.core.config import Settings, get_settings
from app.core.logger import get_logger
from app.core.logging_config import configure_logging

configure_logging()
logger = get_logger(__name__)
settings = get_settings()

_DOCS_MODES = frozenset({"disabled", "secret", "public"})
_SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "no-referrer",
    "Permissions-Policy": "geolocation=(), microphone=(), camera=()",
    "Cache-Control": "no-store",
}


def _csv(value: str, fallback: list[str] | None = None) -> list[str]:
    items = [item.strip() for item in (value or "").split(",") if item.strip()]
    return items or list(fallback or [])


def _docs_mode(raw: str) -> str:
    mode = (raw or "").strip().lower()
    if mode not in _DOCS_MODES:
        logger.warning("유효하지 않은 DOCS_MODE 값입니다. disabled로 대체합니다: %s", raw)
        return "disabled"
    return mode


def _install_middleware(app_: FastAPI, config: Settings) -> None:
    """프록시 헤더, 허용 호스트, CORS 미들웨어를 설정값에 따라 등록합니다."""
    if config.PROXY_HEADERS_ENABLED:
        app_.add_middleware(ProxyHeadersMiddleware, trusted_hosts=_csv(config.PROXY_TRUSTED_HOSTS, ["127.0.0.1"]))

    allowed_hosts = _csv(config.TRUSTED_HOSTS)
    if allowed_hosts:
        app_.add_middleware(TrustedHostMiddleware, allowed_hosts=allowed_hosts)

    origins = _csv(config.CORS_ALLOW_ORIGINS)
    if not origins:
        return
    credentials = config.CORS_ALLOW_CREDENTIALS
    if credentials and "*" in origins:
        logger.warning("CORS 와일드카드 origin에서는 credentials를 허용하지 않습니다. allow_credentials=false로 강제합니다.")
        credentials = False
    app_.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=credentials,
        allow_methods=_csv(config.CORS_ALLOW_METHODS, ["GET"]),
        allow_headers=_csv(config.CORS_ALLOW_HEADERS, ["Content-Type", "x-service-secret"]),
    )


docs_mode = _docs_mode(settings.DOCS_MODE)
_public_docs = docs_mode == "public"


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    """종료 시 실시간 구독과 변경 피드를 정리합니다."""
    logger.info("TripMate AI starting: env=%s docs=%s", settings.APP_ENV, docs_mode)
    yield
    await shutdown_pipeline()


app = FastAPI(
    title="TripMate AI",
    lifespan=lifespan,
    docs_url="/docs" if _public_docs else None,
    redoc_url="/redoc" if _public_docs else None,
    openapi_url="/openapi.json" if _public_docs else None,
)
_install_middleware(app, settings)
app.include_router(chat.router)
app.include_router(sync.router)


@app.middleware("http")
async def add_security_headers(request: Request, call_next) -> Response:
    response = await call_next(request)
    if settings.SECURITY_HEADERS_ENABLED:
        for name, value in _SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
        if settings.ENABLE_HSTS and request.url.scheme == "https":
            response.headers.setdefault("Strict-Transport-Security", f"max-age={settings.HSTS_MAX_AGE_SECONDS}")
    return response


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """처리되지 않은 예외는 500으로 감싸고, 설정에 따라 내부 메시지를 숨깁니다."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path, exc_info=exc)
    detail = str(exc) if settings.EXPOSE_INTERNAL_ERRORS else "내부 서버 오류가 발생했습니다."
    return JSONResponse(status_code=500, content={"detail": detail})


if docs_mode == "secret":
    _secret_only = [Depends(require_service_secret)]

    @app.get("/openapi.json", include_in_schema=False, dependencies=_secret_only)
    def openapi_json() -> JSONResponse:
        return JSONResponse(app.openapi())

    @app.get("/docs", include_in_schema=False, dependencies=_secret_only)
    def swagger_ui() -> Response:
        return get_swagger_ui_html(openapi_url="/openapi.json", title=f"{app.title} - Swagger UI")

    @app.get("/redoc", include_in_schema=False, dependencies=_secret_only)
    def redoc_ui() -> Response:
        return get_redoc_html(openapi_url="/openapi.json", title=f"{app.title} - ReDoc")


@app.get("/")
def health_check() -> dict:
    """헬스 체크 엔드포인트."""
    return {"status": "ok", "message": "TripMate AI Server is running"}
