"""타임아웃 정책 유틸 테스트."""

from app.core.config import Settings
from app.core.timeout_policy import build_timeout_policy, to_requests_timeout


def _settings(**overrides) -> Settings:
    return Settings(OPENAI_API_KEY="test-key", SERVICE_SECRET="test-service-secret", **overrides)


def test_every_limit_is_capped_by_turn_timeout() -> None:
    policy = build_timeout_policy(
        _settings(
            REQUEST_TIMEOUT_SECONDS=20,
            LLM_TIMEOUT_SECONDS=60,
            EXTERNAL_API_TIMEOUT_SECONDS=50,
            GOOGLE_PLACES_TIMEOUT_SECONDS=25,
        )
    )

    assert policy.request_timeout_seconds == 20
    assert policy.llm_timeout_seconds == 20
    assert policy.external_api_timeout_seconds == 20
    assert policy.google_places_timeout_seconds == 20


def test_narrative_steps_share_the_turn_budget() -> None:
    policy = build_timeout_policy(_settings(REQUEST_TIMEOUT_SECONDS=30, LLM_TIMEOUT_SECONDS=25))

    assert policy.llm_timeout_seconds == 25
    assert policy.narrative_step_timeout_seconds == 15


def test_defaults_keep_single_call_limit_for_narrative_steps() -> None:
    policy = build_timeout_policy(_settings())

    assert policy.llm_timeout_seconds == 25
    assert policy.narrative_step_timeout_seconds == 25


def test_places_timeout_is_capped_by_external_api_timeout() -> None:
    policy = build_timeout_policy(_settings(EXTERNAL_API_TIMEOUT_SECONDS=8, GOOGLE_PLACES_TIMEOUT_SECONDS=10))

    assert policy.google_places_timeout_seconds == 8


def test_non_positive_values_fall_back_to_floor() -> None:
    policy = build_timeout_policy(_settings(LLM_TIMEOUT_SECONDS=0))

    assert policy.llm_timeout_seconds == 1


def test_to_requests_timeout_splits_connect_and_read() -> None:
    assert to_requests_timeout(10) == (3.0, 7.0)
    assert to_requests_timeout(60) == (5.0, 55.0)
    assert to_requests_timeout(1) == (1.0, 0.5)
