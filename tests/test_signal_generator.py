"""Tests for parsing and requesting AI recommendations."""

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from autotrader.engine.errors import ConfigurationError, SignalGenerationError
from autotrader.models.enums import RiskProfile, SignalAction
from autotrader.services.signal_generator import (
    OpenAISignalGenerator,
    RiskContext,
    parse_recommendation,
)

_REPLY = {
    "action": "buy",
    "confidence": 0.82,
    "entry_price": 100.0,
    "target_price": 110.0,
    "stop_loss": 95.0,
    "size_percent": 8,
    "rationale": "Breakout above resistance",
}


class TestParseRecommendation:
    def test_plain_json(self):
        rec = parse_recommendation(json.dumps(_REPLY))
        assert rec.action == SignalAction.BUY
        assert rec.confidence == 0.82
        assert rec.size_percent == 8
        assert rec.rationale == "Breakout above resistance"

    def test_fenced_json_block(self):
        text = "Here you go:\n```json\n" + json.dumps(_REPLY) + "\n```"
        assert parse_recommendation(text).target_price == 110.0

    def test_confidence_clamped(self):
        rec = parse_recommendation({**_REPLY, "confidence": 1.7})
        assert rec.confidence == 1.0

    def test_size_clamped_to_risk_profile(self):
        context = RiskContext(risk_profile=RiskProfile.CONSERVATIVE, max_position_percent=10.0)
        rec = parse_recommendation({**_REPLY, "size_percent": 40}, context)
        assert rec.size_percent == 5.0

    def test_size_clamped_to_user_limit(self):
        context = RiskContext(risk_profile=RiskProfile.AGGRESSIVE, max_position_percent=12.0)
        rec = parse_recommendation({**_REPLY, "size_percent": 40}, context)
        assert rec.size_percent == 12.0

    @pytest.mark.parametrize("payload", [
        "not json at all",
        json.dumps({**_REPLY, "action": "SHORT"}),
        json.dumps({**_REPLY, "confidence": "high"}),
        json.dumps([1, 2, 3]),
    ])
    def test_unusable_replies(self, payload):
        with pytest.raises(SignalGenerationError):
            parse_recommendation(payload)


def _completion(content: str):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


def _generator(market, content: str) -> OpenAISignalGenerator:
    generator = OpenAISignalGenerator(market, api_key="sk-test", model="gpt-test")
    generator.client = MagicMock()
    generator.client.chat.completions.create = AsyncMock(return_value=_completion(content))
    return generator


@pytest.mark.asyncio
async def test_generate_requests_json_reply(market):
    generator = _generator(market, json.dumps(_REPLY))

    rec = await generator.generate("btc_idr", RiskContext())

    assert rec.action == SignalAction.BUY
    call_kwargs = generator.client.chat.completions.create.call_args.kwargs
    assert call_kwargs["model"] == "gpt-test"
    assert call_kwargs["response_format"] == {"type": "json_object"}
    assert "BTC_IDR" in call_kwargs["messages"][1]["content"]


@pytest.mark.asyncio
async def test_missing_entry_price_falls_back_to_last(market):
    generator = _generator(market, json.dumps({**_REPLY, "entry_price": None}))

    rec = await generator.generate("btc_idr", RiskContext())

    assert rec.entry_price == 100.0


@pytest.mark.asyncio
async def test_generate_without_api_key(market):
    generator = _generator(market, "{}")
    generator.client = None

    with pytest.raises(ConfigurationError):
        await generator.generate("btc_idr", RiskContext())
