"""Tests for the reasoning adapter and the Anthropic-backed service."""

from __future__ import annotations

import asyncio
import json
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import anthropic
import httpx
import pytest

import appraiser.reasoning.service as service_module
from appraiser.errors import ReasoningError
from appraiser.reasoning.adapter import (
    AUTHENTICITY_FALLBACK_RATIONALE,
    VALUATION_FALLBACK_RECOMMENDATION,
    AuthenticityContext,
    ReasoningAdapter,
    ValuationContext,
    extract_json,
)
from appraiser.reasoning.service import AnthropicReasoningService
from appraiser.schemas import AuthenticitySignals, CardMeta, PricingResult
from helpers import ScriptedReasoningService, make_features

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

STRONG_SIGNALS = AuthenticitySignals(
    visual_hash_confidence=0.95,
    text_match_confidence=0.95,
    holo_pattern_confidence=0.9,
    border_consistency=0.95,
    font_validation=0.9,
)

WEAK_SIGNALS = AuthenticitySignals(
    visual_hash_confidence=0.2,
    text_match_confidence=0.3,
    holo_pattern_confidence=0.3,
    border_consistency=0.5,
    font_validation=0.4,
)

PRICING = PricingResult(
    value_low=Decimal("120.00"),
    value_median=Decimal("150.00"),
    value_high=Decimal("180.00"),
    comps_count=25,
    window_days=14,
    sources=["ebay", "justtcg"],
    confidence=0.75,
    volatility=0.2,
)


def _auth_context(signals: AuthenticitySignals = STRONG_SIGNALS) -> AuthenticityContext:
    return AuthenticityContext(
        features=make_features(),
        signals=signals,
        card_meta=CardMeta(name="Charizard", set_name="Base Set", rarity="Rare Holo"),
        expected_holo=True,
    )


def _valuation_context(pricing: PricingResult = PRICING) -> ValuationContext:
    return ValuationContext(card_name="Charizard", set_name="Base Set", pricing_result=pricing)


class _SlowService:
    async def invoke(self, system: str, prompt: str) -> str:
        await asyncio.sleep(5)
        return "{}"


# ---------------------------------------------------------------------------
# extract_json
# ---------------------------------------------------------------------------


class TestExtractJson:
    def test_fenced_block(self):
        text = 'Here you go:\n```json\n{"a": 1}\n```\nThanks'
        assert extract_json(text) == {"a": 1}

    def test_bare_object(self):
        assert extract_json('The answer is {"a": {"b": 2}} ok') == {"a": {"b": 2}}

    def test_no_json(self):
        with pytest.raises(ReasoningError):
            extract_json("I cannot help with that.")

    def test_broken_json(self):
        with pytest.raises(ReasoningError):
            extract_json('{"a": 1,,}')


# ---------------------------------------------------------------------------
# invoke_authenticity
# ---------------------------------------------------------------------------


class TestInvokeAuthenticity:
    @pytest.mark.asyncio
    async def test_ai_verdict(self):
        service = ScriptedReasoningService(
            json.dumps({"authenticityScore": 0.93, "fakeDetected": False, "rationale": "Print pattern matches."})
        )
        result = await ReasoningAdapter(service).invoke_authenticity(_auth_context())

        assert result.verified_by_ai is True
        assert result.authenticity_score == 0.93
        assert result.fake_detected is False
        assert result.rationale == "Print pattern matches."
        assert result.signals == STRONG_SIGNALS

    @pytest.mark.asyncio
    async def test_prompt_carries_threshold_and_card(self):
        service = ScriptedReasoningService(
            json.dumps({"authenticityScore": 0.9, "fakeDetected": False, "rationale": "ok"})
        )
        await ReasoningAdapter(service, fake_threshold=0.8).invoke_authenticity(_auth_context())

        system, prompt = service.calls[0]
        assert "0.8" in system
        assert "Charizard" in prompt

    @pytest.mark.asyncio
    async def test_low_ai_score_forces_fake(self):
        """A score under the threshold is fake even if the model says otherwise."""
        service = ScriptedReasoningService(
            json.dumps({"authenticityScore": 0.6, "fakeDetected": False, "rationale": "Unsure."})
        )
        result = await ReasoningAdapter(service, fake_threshold=0.85).invoke_authenticity(_auth_context())
        assert result.fake_detected is True

    @pytest.mark.asyncio
    async def test_timeout_falls_back_to_signals(self):
        """A reasoning call that exceeds its deadline yields the weighted-signal verdict."""
        adapter = ReasoningAdapter(_SlowService(), timeout_seconds=0.05)
        result = await adapter.invoke_authenticity(_auth_context())

        assert result.verified_by_ai is False
        assert result.rationale == AUTHENTICITY_FALLBACK_RATIONALE
        assert result.authenticity_score == pytest.approx(0.935)
        assert result.fake_detected is False

    @pytest.mark.asyncio
    async def test_fallback_flags_weak_signals(self):
        service = ScriptedReasoningService(ReasoningError("throttled"))
        result = await ReasoningAdapter(service).invoke_authenticity(_auth_context(WEAK_SIGNALS))

        assert result.verified_by_ai is False
        assert result.fake_detected is True

    @pytest.mark.asyncio
    async def test_malformed_reply_falls_back(self):
        service = ScriptedReasoningService('{"authenticityScore": 7, "fakeDetected": "maybe"}')
        result = await ReasoningAdapter(service).invoke_authenticity(_auth_context())
        assert result.verified_by_ai is False


# ---------------------------------------------------------------------------
# invoke_valuation
# ---------------------------------------------------------------------------


class TestInvokeValuation:
    @pytest.mark.asyncio
    async def test_ai_summary(self):
        reply = {
            "summary": "Solid demand for Base Set Charizard.",
            "fairValue": 152.499,
            "trend": "rising",
            "recommendation": "Hold.",
            "confidence": 0.8,
        }
        service = ScriptedReasoningService("```json\n" + json.dumps(reply) + "\n```")
        summary = await ReasoningAdapter(service).invoke_valuation(_valuation_context())

        assert summary.fair_value == Decimal("152.50")
        assert summary.trend == "rising"
        assert summary.confidence == 0.8

    @pytest.mark.asyncio
    async def test_timeout_falls_back_to_template(self):
        adapter = ReasoningAdapter(_SlowService(), timeout_seconds=0.05)
        summary = await adapter.invoke_valuation(_valuation_context())

        assert summary.summary == (
            "Based on 25 recent sales, this card is valued between $120.00 and $180.00. "
            "AI analysis unavailable."
        )
        assert summary.fair_value == Decimal("150.00")
        assert summary.trend == "stable"
        assert summary.recommendation == VALUATION_FALLBACK_RECOMMENDATION
        assert summary.confidence == pytest.approx(0.525)

    @pytest.mark.asyncio
    async def test_fallback_confidence_floor(self):
        thin = PRICING.model_copy(update={"comps_count": 1, "confidence": 0.1})
        summary = await ReasoningAdapter(ScriptedReasoningService("no json here")).invoke_valuation(
            _valuation_context(thin)
        )
        assert summary.confidence == 0.3

    @pytest.mark.asyncio
    async def test_no_comps_skips_ai(self):
        """With nothing to value the service is never called."""
        service = ScriptedReasoningService()
        summary = await ReasoningAdapter(service).invoke_valuation(
            _valuation_context(PricingResult.empty(window_days=14))
        )

        assert service.calls == []
        assert summary.fair_value is None
        assert summary.confidence == 0.0


# ---------------------------------------------------------------------------
# AnthropicReasoningService
# ---------------------------------------------------------------------------


def _mock_client(create: AsyncMock) -> MagicMock:
    client = MagicMock()
    client.messages.create = create
    return client


class TestAnthropicReasoningService:
    @pytest.mark.asyncio
    async def test_joins_text_blocks(self):
        response = SimpleNamespace(
            content=[
                SimpleNamespace(type="text", text='{"a": '),
                SimpleNamespace(type="text", text="1}"),
            ],
            usage=SimpleNamespace(input_tokens=10, output_tokens=5),
        )
        create = AsyncMock(return_value=response)
        service = AnthropicReasoningService(client=_mock_client(create), model_id="test-model")

        assert await service.invoke("system", "prompt") == '{"a": 1}'
        kwargs = create.call_args.kwargs
        assert kwargs["model"] == "test-model"
        assert kwargs["system"] == "system"
        assert kwargs["messages"] == [{"role": "user", "content": "prompt"}]

    @pytest.mark.asyncio
    async def test_api_error_becomes_reasoning_error(self):
        request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
        create = AsyncMock(side_effect=anthropic.APIConnectionError(request=request))
        service = AnthropicReasoningService(client=_mock_client(create))

        with pytest.raises(ReasoningError):
            await service.invoke("system", "prompt")

    @pytest.mark.asyncio
    async def test_empty_reply(self):
        response = SimpleNamespace(content=[], usage=None)
        service = AnthropicReasoningService(client=_mock_client(AsyncMock(return_value=response)))

        with pytest.raises(ReasoningError):
            await service.invoke("system", "prompt")

    @pytest.mark.asyncio
    async def test_missing_api_key(self):
        with patch.object(service_module.settings, "ANTHROPIC_API_KEY", ""):
            with pytest.raises(ReasoningError):
                await AnthropicReasoningService().invoke("system", "prompt")
