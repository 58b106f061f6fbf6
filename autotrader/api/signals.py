"""Signals API — list, generate on demand, approve, reject."""

from fastapi import APIRouter, Depends

from autotrader.engine.components import Components
from autotrader.models.enums import SignalStatus
from autotrader.schemas.signal import ApprovalRead, GenerateSignalRequest, SignalRead
from autotrader.api.deps import components, get_current_user_id

router = APIRouter(prefix="/api/signals", tags=["signals"])


@router.get("", response_model=list[SignalRead])
def list_signals(
    status: SignalStatus | None = None,
    pair: str | None = None,
    limit: int = 50,
    offset: int = 0,
    user_id: int = Depends(get_current_user_id),
    c: Components = Depends(components),
):
    return c.signals.list_signals(user_id, status=status, pair=pair, limit=limit, offset=offset)


@router.get("/pending", response_model=list[SignalRead])
def pending_signals(user_id: int = Depends(get_current_user_id), c: Components = Depends(components)):
    return c.signals.list_pending(user_id)


@router.get("/{signal_id}", response_model=SignalRead)
def get_signal(signal_id: int, user_id: int = Depends(get_current_user_id), c: Components = Depends(components)):
    return c.signals.get(signal_id, user_id=user_id)


@router.post("/generate")
async def generate_signal(
    body: GenerateSignalRequest,
    user_id: int = Depends(get_current_user_id),
    c: Components = Depends(components),
):
    """Analyse one pair now, bypassing the cooldown but not the portfolio limits."""
    result = await c.signal_scheduler.evaluate(user_id, pair=body.pair)
    return {"outcome": result.outcome.value, "message": result.message}


@router.post("/{signal_id}/approve", response_model=ApprovalRead)
async def approve_signal(
    signal_id: int,
    user_id: int = Depends(get_current_user_id),
    c: Components = Depends(components),
):
    result = await c.executor.approve(signal_id, user_id)
    return {"signal": result.signal, "order": result.order, "position": result.position}


@router.post("/{signal_id}/reject", response_model=SignalRead)
def reject_signal(signal_id: int, user_id: int = Depends(get_current_user_id), c: Components = Depends(components)):
    return c.executor.reject(signal_id, user_id)
