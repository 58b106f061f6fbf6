"""Signal store. Expiry is applied lazily whenever a signal is read."""

import logging
from datetime import timedelta

from sqlalchemy import update
from sqlmodel import Session, select

from autotrader.config import settings
from autotrader.engine.errors import InvalidStateError, NotFoundError
from autotrader.models.enums import SignalAction, SignalStatus
from autotrader.models.signal import Signal
from autotrader.utils.timeutils import is_expired, utcnow

logger = logging.getLogger(__name__)


class SignalBook:
    def __init__(self, engine, validity_minutes: int | None = None):
        self.engine = engine
        self.validity = timedelta(minutes=validity_minutes or settings.signal_validity_minutes)

    def record(self, user_id: int, pair: str, recommendation, status: SignalStatus = SignalStatus.PENDING) -> Signal:
        if recommendation.action == SignalAction.HOLD:
            raise InvalidStateError("HOLD recommendations are not stored")

        now = utcnow()
        signal = Signal(
            user_id=user_id,
            pair=pair.lower(),
            action=recommendation.action,
            confidence=recommendation.confidence,
            entry_price=recommendation.entry_price,
            target_price=recommendation.target_price,
            stop_loss=recommendation.stop_loss,
            size_percent=recommendation.size_percent,
            rationale=recommendation.rationale,
            status=status,
            valid_until=now + self.validity,
            created_at=now,
            updated_at=now,
        )
        with Session(self.engine) as session:
            session.add(signal)
            session.commit()
            session.refresh(signal)
        logger.info(
            f"[Signal] Stored {signal.status.value} {signal.action.value} {signal.pair} "
            f"(confidence {signal.confidence:.2f}) for user {user_id}"
        )
        return signal

    def transition(self, signal_id: int, expected: SignalStatus | list[SignalStatus], new: SignalStatus) -> bool:
        """Conditional status write; False if the signal was not at ``expected``."""
        expected = expected if isinstance(expected, list) else [expected]
        stmt = (
            update(Signal)
            .where(Signal.id == signal_id, Signal.status.in_(expected))  # type: ignore[attr-defined]
            .values(status=new, updated_at=utcnow())
        )
        with self.engine.begin() as conn:
            return conn.execute(stmt).rowcount > 0

    def _load(self, signal_id: int) -> Signal | None:
        with Session(self.engine) as session:
            return session.get(Signal, signal_id)

    def _expire_if_stale(self, signal: Signal) -> Signal:
        if signal.status == SignalStatus.PENDING and is_expired(signal.valid_until):
            if self.transition(signal.id, SignalStatus.PENDING, SignalStatus.EXPIRED):
                logger.info(f"[Signal] Signal {signal.id} expired")
            return self._load(signal.id)
        return signal

    def get(self, signal_id: int, user_id: int | None = None) -> Signal:
        signal = self._load(signal_id)
        if signal is None or (user_id is not None and signal.user_id != user_id):
            raise NotFoundError(f"Signal not found: {signal_id}")
        return self._expire_if_stale(signal)

    def list_signals(
        self,
        user_id: int,
        status: SignalStatus | None = None,
        pair: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Signal]:
        stmt = select(Signal).where(Signal.user_id == user_id)
        if status is not None:
            stmt = stmt.where(Signal.status == status)
        if pair is not None:
            stmt = stmt.where(Signal.pair == pair.lower())
        stmt = stmt.order_by(Signal.created_at.desc()).offset(offset).limit(limit)  # type: ignore[attr-defined]
        with Session(self.engine) as session:
            signals = list(session.exec(stmt).all())
        return [self._expire_if_stale(s) for s in signals]

    def list_pending(self, user_id: int) -> list[Signal]:
        """Still-actionable signals; stale ones are flipped to EXPIRED on the way."""
        pending = self.list_signals(user_id, status=SignalStatus.PENDING, limit=200)
        return [s for s in pending if s.status == SignalStatus.PENDING]
