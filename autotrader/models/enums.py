"""Status and kind enumerations shared by the models and the engine."""

from enum import Enum


class PositionStatus(str, Enum):
    OPEN = "OPEN"
    PARTIALLY_CLOSED = "PARTIALLY_CLOSED"
    CLOSED = "CLOSED"


class CloseReason(str, Enum):
    TAKE_PROFIT = "TAKE_PROFIT"
    STOP_LOSS = "STOP_LOSS"
    MANUAL = "MANUAL"
    SIGNAL = "SIGNAL"


class OrderSide(str, Enum):
    BUY = "BUY"
    SELL = "SELL"


class OrderKind(str, Enum):
    LIMIT = "LIMIT"
    MARKET = "MARKET"


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    PLACED = "PLACED"
    PARTIAL = "PARTIAL"
    FILLED = "FILLED"
    CANCELLED = "CANCELLED"
    FAILED = "FAILED"


TERMINAL_ORDER_STATUSES = frozenset(
    {OrderStatus.FILLED, OrderStatus.CANCELLED, OrderStatus.FAILED}
)

# Position along PENDING → PLACED → PARTIAL → {FILLED, CANCELLED, FAILED}
ORDER_STATUS_RANK = {
    OrderStatus.PENDING: 0,
    OrderStatus.PLACED: 1,
    OrderStatus.PARTIAL: 2,
    OrderStatus.FILLED: 3,
    OrderStatus.CANCELLED: 3,
    OrderStatus.FAILED: 3,
}


class SignalAction(str, Enum):
    BUY = "BUY"
    SELL = "SELL"
    HOLD = "HOLD"


class SignalStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    EXECUTED = "EXECUTED"
    SKIPPED = "SKIPPED"
    EXPIRED = "EXPIRED"


class TradingMode(str, Enum):
    MANUAL = "MANUAL"
    COPILOT = "COPILOT"
    AUTONOMOUS = "AUTONOMOUS"


class RiskProfile(str, Enum):
    CONSERVATIVE = "CONSERVATIVE"
    BALANCED = "BALANCED"
    AGGRESSIVE = "AGGRESSIVE"


class NotificationKind(str, Enum):
    SIGNAL = "SIGNAL"
    TRADE = "TRADE"
    SYSTEM = "SYSTEM"
