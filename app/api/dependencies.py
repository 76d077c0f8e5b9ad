"""API 의존성 모음."""

from fastapi import Header, HTTPException, status

from app.core.config import get_settings
from app.services.pipeline import Pipeline, build_pipeline

_pipeline: Pipeline | None = None


def get_pipeline() -> Pipeline:
    """프로세스 단위 `Pipeline`을 제공합니다. 최초 요청 시에만 조립됩니다."""
    global _pipeline
    if _pipeline is None:
        _pipeline = build_pipeline()
    return _pipeline


async def shutdown_pipeline() -> None:
    """조립된 파이프라인이 있으면 구독과 변경 피드를 정리합니다."""
    global _pipeline
    if _pipeline is not None:
        await _pipeline.close()
        _pipeline = None


def require_service_secret(
    x_service_secret: str | None = Header(default=None, alias="x-service-secret"),
) -> None:
    """서비스 간 인증을 위한 시크릿 헤더를 검증한다."""
    settings = get_settings()
    if not settings.SERVICE_SECRET:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="서비스 시크릿 설정이 없습니다.",
        )

    if x_service_secret != settings.SERVICE_SECRET:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="유효하지 않은 서비스 시크릿입니다.",
        )
