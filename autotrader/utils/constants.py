"""Shared constants and defaults."""

from autotrader.models.enums import RiskProfile

CYCLE_POSITION_MONITOR = "position_monitor"
CYCLE_ORDER_SYNC = "order_sync"
CYCLE_SIGNAL_ANALYSIS = "signal_analysis"

CYCLE_NAMES = [CYCLE_POSITION_MONITOR, CYCLE_ORDER_SYNC, CYCLE_SIGNAL_ANALYSIS]

# Per-profile sizing caps applied to AI recommendations
RISK_PROFILES: dict[RiskProfile, dict[str, float]] = {
    RiskProfile.CONSERVATIVE: {
        "max_position_percent": 5.0,
        "stop_loss_percent": 2.0,
        "take_profit_percent": 5.0,
        "min_confidence": 0.85,
    },
    RiskProfile.BALANCED: {
        "max_position_percent": 10.0,
        "stop_loss_percent": 5.0,
        "take_profit_percent": 10.0,
        "min_confidence": 0.75,
    },
    RiskProfile.AGGRESSIVE: {
        "max_position_percent": 20.0,
        "stop_loss_percent": 8.0,
        "take_profit_percent": 20.0,
        "min_confidence": 0.65,
    },
}
