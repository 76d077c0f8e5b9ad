"""Stage 기반 LLM 모델 선택과 단일 시도 호출 유틸.

LLM 호출은 한 번만 시도한다. 실패나 시간 초과는 호출자에게 그대로 전파되고,
재시도는 사용자가 메시지를 다시 보내는 것으로만 일어난다.
"""

from __future__ import annotations

from enum import StrEnum
from functools import lru_cache
from time import perf_counter
from typing import Any

from langchain_openai import ChatOpenAI

from app.core.config import Settings, get_settings
from app.core.logger import get_logger
from app.core.timeout_policy import get_timeout_policy

logger = get_logger(__name__)


class Tier(StrEnum):
    """Stage 라우팅 tier."""

    QUALITY = "QUALITY"
    SPEED = "SPEED"


class Stage(StrEnum):
    """LLM 호출 stage."""

    TURN_STRUCTURED = "TURN_STRUCTURED"
    TURN_NARRATIVE = "TURN_NARRATIVE"
    PLACE_EXTRACTION = "PLACE_EXTRACTION"


_STAGE_TIER_MAP: dict[Stage, Tier] = {
    Stage.TURN_STRUCTURED: Tier.QUALITY,
    Stage.TURN_NARRATIVE: Tier.QUALITY,
    Stage.PLACE_EXTRACTION: Tier.SPEED,
}


def stage_to_tier(stage: Stage) -> Tier:
    """Stage를 tier로 매핑합니다."""
    return _STAGE_TIER_MAP[stage]


def resolve_model(stage: Stage, settings: Settings | None = None) -> tuple[str, Tier | None]:
    """설정과 stage를 기반으로 모델을 선택합니다. tier 모델이 비어 있으면 기본 모델을 씁니다."""
    resolved_settings = settings or get_settings()
    default_model = resolved_settings.LLM_MODEL_NAME.strip()
    if not resolved_settings.ENABLE_STAGE_LLM_ROUTING:
        return default_model, None

    tier = stage_to_tier(stage)
    tier_model = resolved_settings.LLM_MODEL_QUALITY if tier == Tier.QUALITY else resolved_settings.LLM_MODEL_SPEED
    return (tier_model.strip() or default_model), tier


@lru_cache(maxsize=32)
def _get_chat_openai_client(
    model: str,
    temperature: float,
    timeout_seconds: int,
    api_key: str,
) -> ChatOpenAI:
    # 단일 시도: SDK 자체 재시도 비활성화
    return ChatOpenAI(
        model=model,
        temperature=temperature,
        api_key=api_key,
        request_timeout=timeout_seconds,
        max_retries=0,
    )


def clear_llm_client_cache() -> None:
    """테스트/운영 시 클라이언트 캐시를 비웁니다."""
    _get_chat_openai_client.cache_clear()


async def ainvoke(
    stage: Stage,
    payload: Any,
    *,
    settings: Settings | None = None,
    temperature: float | None = None,
    model: str | None = None,
) -> Any:
    """Stage 기준으로 모델을 골라 비동기 LLM 호출을 한 번 수행합니다."""
    resolved_settings = settings or get_settings()
    timeout_seconds = get_timeout_policy(resolved_settings).llm_timeout_seconds
    selected_model, tier = resolve_model(stage, resolved_settings)
    if model:
        selected_model = model.strip()
    resolved_temperature = resolved_settings.LLM_TEMPERATURE if temperature is None else float(temperature)
    log_fields = {"stage": stage.value, "tier": tier.value if tier else None, "selected_model": selected_model}

    started = perf_counter()
    client = _get_chat_openai_client(
        selected_model,
        resolved_temperature,
        timeout_seconds,
        resolved_settings.OPENAI_API_KEY,
    )
    try:
        response = await client.ainvoke(payload)
    except Exception as exc:
        logger.warning(
            "LLM call failed",
            extra={**log_fields, "latency_ms": (perf_counter() - started) * 1000},
            exc_info=exc,
        )
        raise

    logger.info("LLM call succeeded", extra={**log_fields, "latency_ms": (perf_counter() - started) * 1000})
    return response
