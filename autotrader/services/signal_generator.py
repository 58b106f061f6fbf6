"""AI trade recommendations for a single pair.

The generator is handed a live ticker plus the user's risk context and asks an
OpenAI chat model for a JSON verdict. Anything unparseable is a
SignalGenerationError; the scheduler treats it as transient.
"""

import json
import logging
import re
import time
from dataclasses import dataclass, field

from openai import AsyncOpenAI, OpenAIError

from autotrader.config import settings
from autotrader.engine.errors import ConfigurationError, ExchangeError, SignalGenerationError
from autotrader.models.enums import RiskProfile, SignalAction
from autotrader.utils.constants import RISK_PROFILES

logger = logging.getLogger(__name__)

_JSON_BLOCK = re.compile(r"```(?:json)?\s*(\{.*?\})\s*```", re.DOTALL)


@dataclass
class RiskContext:
    """What the model needs to know about the user's appetite and book."""
    risk_profile: RiskProfile = RiskProfile.BALANCED
    max_position_percent: float = 10.0
    stop_loss_percent: float = 5.0
    take_profit_percent: float = 10.0
    open_positions: int = 0
    max_open_positions: int = 3
    holdings: float = 0.0  # bot-held coins for this pair


@dataclass
class SignalRecommendation:
    action: SignalAction
    confidence: float
    entry_price: float
    target_price: float
    stop_loss: float
    size_percent: float
    rationale: str = ""
    raw: dict = field(default_factory=dict, repr=False)


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def _num(data: dict, key: str, default: float = 0.0) -> float:
    try:
        return float(data.get(key) if data.get(key) is not None else default)
    except (TypeError, ValueError):
        return default


def parse_recommendation(payload: str | dict, context: RiskContext | None = None) -> SignalRecommendation:
    """Turn a model reply into a recommendation.

    Accepts a dict or raw text (bare JSON or a fenced ```json block). Confidence
    is clamped to [0, 1] and size to the risk profile's maximum.
    """
    if isinstance(payload, str):
        match = _JSON_BLOCK.search(payload)
        text = match.group(1) if match else payload
        try:
            data = json.loads(text)
        except ValueError as e:
            raise SignalGenerationError(f"Model reply is not JSON: {e}") from e
    else:
        data = payload

    if not isinstance(data, dict):
        raise SignalGenerationError("Model reply is not a JSON object")

    try:
        action = SignalAction(str(data.get("action", "")).upper())
    except ValueError as e:
        raise SignalGenerationError(f"Unknown action: {data.get('action')!r}") from e

    if not isinstance(data.get("confidence"), (int, float)):
        raise SignalGenerationError("Model reply has no numeric confidence")

    context = context or RiskContext()
    profile_cap = RISK_PROFILES[context.risk_profile]["max_position_percent"]
    size_cap = min(profile_cap, context.max_position_percent)

    return SignalRecommendation(
        action=action,
        confidence=_clamp(float(data["confidence"]), 0.0, 1.0),
        entry_price=_num(data, "entry_price"),
        target_price=_num(data, "target_price"),
        stop_loss=_num(data, "stop_loss"),
        size_percent=_clamp(_num(data, "size_percent", 5.0), 0.0, size_cap),
        rationale=str(data.get("rationale") or "No rationale provided"),
        raw=data,
    )


SYSTEM_PROMPT = """You are a disciplined spot-crypto analyst for an IDR-quoted exchange (Indodax).
You only trade long: BUY opens a position, SELL exits coins the bot already holds.

Respond with a single JSON object:
{
  "action": "BUY" | "SELL" | "HOLD",
  "confidence": 0.0-1.0,
  "entry_price": number (IDR),
  "target_price": number (IDR),
  "stop_loss": number (IDR),
  "size_percent": number (percent of IDR balance),
  "rationale": "short explanation"
}

Rules:
- Prefer HOLD unless several signals agree.
- SELL is only valid when the bot holds coins for the pair.
- stop_loss must be below entry_price and target_price above it for BUY.
"""


class OpenAISignalGenerator:
    """``generate(pair, context)`` backed by an OpenAI chat completion."""

    def __init__(self, market, api_key: str | None = None, model: str | None = None,
                 timeout: float | None = None):
        self.market = market
        self.model = model or settings.openai_model
        self.timeout = timeout or settings.openai_timeout_seconds
        key = api_key or settings.openai_api_key
        self.client = AsyncOpenAI(api_key=key, timeout=self.timeout) if key else None

    def _format_request(self, ticker, context: RiskContext) -> str:
        profile = RISK_PROFILES[context.risk_profile]
        change = (ticker.last - ticker.low) / ticker.low * 100 if ticker.low else 0.0
        parts = [
            "=== Market ===",
            f"Pair: {ticker.pair.upper()}",
            f"Last: {ticker.last:,.0f} IDR",
            f"24h High/Low: {ticker.high:,.0f} / {ticker.low:,.0f} IDR",
            f"Bid/Ask: {ticker.buy:,.0f} / {ticker.sell:,.0f} IDR",
            f"24h Volume: {ticker.volume_idr:,.0f} IDR",
            f"Above 24h low: {change:.2f}%",
            "",
            "=== Risk ===",
            f"Profile: {context.risk_profile.value}",
            f"Max size: {min(profile['max_position_percent'], context.max_position_percent)}% of balance",
            f"Stop-loss guide: {context.stop_loss_percent}% | Take-profit guide: {context.take_profit_percent}%",
            f"Open positions: {context.open_positions}/{context.max_open_positions}",
            f"Bot holdings for this pair: {context.holdings}",
            "",
            "Provide your decision in JSON format.",
        ]
        return "\n".join(parts)

    async def generate(self, pair: str, context: RiskContext) -> SignalRecommendation:
        if self.client is None:
            raise ConfigurationError("AT_OPENAI_API_KEY not set")

        try:
            ticker = await self.market.get_ticker(pair)
        except ExchangeError as e:
            raise SignalGenerationError(f"No market data for {pair}: {e}") from e

        start = time.perf_counter()
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": self._format_request(ticker, context)},
                ],
                response_format={"type": "json_object"},
                temperature=0.3,
            )
        except OpenAIError as e:
            raise SignalGenerationError(f"OpenAI call failed: {e}") from e

        elapsed = time.perf_counter() - start
        content = response.choices[0].message.content or ""
        logger.info(f"[Analysis] {pair} model reply in {elapsed * 1000:.0f}ms")
        logger.debug(f"[Analysis] Raw reply: {content}")

        rec = parse_recommendation(content, context)
        if not rec.entry_price:
            rec.entry_price = ticker.last
        return rec
