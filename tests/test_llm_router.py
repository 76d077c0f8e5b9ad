"""Stage 기반 LLM 라우팅 테스트."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from app.core.config import Settings
from app.core.llm_router import Stage, Tier, ainvoke, clear_llm_client_cache, resolve_model


def _settings(**overrides) -> Settings:
    return Settings(OPENAI_API_KEY="test-key", SERVICE_SECRET="test-service-secret", **overrides)


class TestResolveModel:
    """resolve_model 테스트."""

    def test_routing_disabled_uses_default_model(self):
        """라우팅을 끄면 기본 모델을 쓴다."""
        assert resolve_model(Stage.PLACE_EXTRACTION, _settings(LLM_MODEL_NAME=" gpt-4o-mini ")) == ("gpt-4o-mini", None)

    def test_routing_selects_tier_model(self):
        """stage별 tier 모델을 고른다."""
        settings = _settings(ENABLE_STAGE_LLM_ROUTING=True, LLM_MODEL_QUALITY="gpt-4o", LLM_MODEL_SPEED="gpt-4o-mini")

        assert resolve_model(Stage.TURN_STRUCTURED, settings) == ("gpt-4o", Tier.QUALITY)
        assert resolve_model(Stage.PLACE_EXTRACTION, settings) == ("gpt-4o-mini", Tier.SPEED)

    def test_empty_tier_model_falls_back(self):
        """tier 모델이 비어 있으면 기본 모델로 대체한다."""
        settings = _settings(ENABLE_STAGE_LLM_ROUTING=True, LLM_MODEL_NAME="gpt-4o-mini")

        assert resolve_model(Stage.TURN_NARRATIVE, settings) == ("gpt-4o-mini", Tier.QUALITY)


class TestAinvoke:
    """ainvoke 단일 시도 호출 테스트."""

    def setup_method(self):
        clear_llm_client_cache()

    def teardown_method(self):
        clear_llm_client_cache()

    def test_builds_single_attempt_client(self):
        """SDK 재시도 없이 한 번만 호출한다."""
        client = MagicMock()
        client.ainvoke = AsyncMock(return_value="ok")

        with patch("app.core.llm_router.ChatOpenAI", return_value=client) as chat_openai:
            result = asyncio.run(ainvoke(Stage.TURN_STRUCTURED, ["hi"], settings=_settings(), temperature=0.2))

        assert result == "ok"
        kwargs = chat_openai.call_args.kwargs
        assert kwargs["max_retries"] == 0
        assert kwargs["temperature"] == 0.2
        assert kwargs["request_timeout"] == 25
        client.ainvoke.assert_awaited_once_with(["hi"])

    def test_failure_is_propagated(self):
        """호출 실패는 그대로 전파한다."""
        client = MagicMock()
        client.ainvoke = AsyncMock(side_effect=RuntimeError("upstream down"))

        with patch("app.core.llm_router.ChatOpenAI", return_value=client):
            with pytest.raises(RuntimeError):
                asyncio.run(ainvoke(Stage.TURN_STRUCTURED, ["hi"], settings=_settings()))

        assert client.ainvoke.await_count == 1

    def test_model_override_wins(self):
        """명시한 모델이 라우팅 결과보다 우선한다."""
        client = MagicMock()
        client.ainvoke = AsyncMock(return_value="ok")

        with patch("app.core.llm_router.ChatOpenAI", return_value=client) as chat_openai:
            asyncio.run(ainvoke(Stage.PLACE_EXTRACTION, ["hi"], settings=_settings(), model=" gpt-4.1 "))

        assert chat_openai.call_args.kwargs["model"] == "gpt-4.1"
