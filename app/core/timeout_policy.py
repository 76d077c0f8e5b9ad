"""대화 턴 타임아웃 정책.

한 턴의 상한(`REQUEST_TIMEOUT_SECONDS`) 안에서 LLM 호출과 장소 검색 한도를 나눈다.
자연어 계획 모드는 LLM을 두 번 연달아 부르므로 단계별 한도가 턴 상한의 절반을 넘지 않는다.
"""

from __future__ import annotations

from dataclasses import dataclass

from app.core.config import Settings, get_settings

_FLOOR_SECONDS = 1
_CONNECT_CAP_SECONDS = 5.0
_CONNECT_SHARE = 0.3


def _seconds(value: int | float | None, fallback: int, cap: int | None = None) -> int:
    try:
        seconds = int(value) if value is not None else fallback
    except (TypeError, ValueError):
        seconds = fallback
    seconds = max(_FLOOR_SECONDS, seconds)
    return seconds if cap is None else min(seconds, cap)


@dataclass(frozen=True, slots=True)
class TimeoutPolicy:
    request_timeout_seconds: int
    llm_timeout_seconds: int
    narrative_step_timeout_seconds: int
    external_api_timeout_seconds: int
    google_places_timeout_seconds: int


def build_timeout_policy(settings: Settings) -> TimeoutPolicy:
    """설정값을 턴 상한 기준으로 잘라 정책을 만듭니다."""
    turn = _seconds(settings.REQUEST_TIMEOUT_SECONDS, 60)
    llm = _seconds(settings.LLM_TIMEOUT_SECONDS, 25, cap=turn)
    external = _seconds(settings.EXTERNAL_API_TIMEOUT_SECONDS, 15, cap=turn)
    return TimeoutPolicy(
        request_timeout_seconds=turn,
        llm_timeout_seconds=llm,
        narrative_step_timeout_seconds=min(llm, max(_FLOOR_SECONDS, turn // 2)),
        external_api_timeout_seconds=external,
        google_places_timeout_seconds=_seconds(settings.GOOGLE_PLACES_TIMEOUT_SECONDS, 10, cap=external),
    )


def get_timeout_policy(settings: Settings | None = None) -> TimeoutPolicy:
    return build_timeout_policy(settings or get_settings())


def to_requests_timeout(total_timeout_seconds: int) -> tuple[float, float]:
    """requests용 (connect, read) 타임아웃. connect는 전체의 30%, 최대 5초."""
    total = float(max(_FLOOR_SECONDS, int(total_timeout_seconds)))
    connect = min(_CONNECT_CAP_SECONDS, max(1.0, total * _CONNECT_SHARE))
    if total > connect:
        return (connect, max(1.0, total - connect))
    return (connect, max(0.5, total * 0.5))
