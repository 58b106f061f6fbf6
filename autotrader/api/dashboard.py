"""Dashboard API — counts and position summary."""

from fastapi import APIRouter, Depends

from autotrader.engine.components import Components
from autotrader.engine.stats import get_counts, get_signal_stats
from autotrader.schemas.position import PositionSummary
from autotrader.api.deps import components, get_current_user_id

router = APIRouter(prefix="/api/dashboard", tags=["dashboard"])


@router.get("/counts")
def dashboard_counts(user_id: int = Depends(get_current_user_id), c: Components = Depends(components)):
    """Open positions, pending signals and working orders for the current user."""
    return get_counts(c.engine, user_id=user_id)


@router.get("/summary", response_model=PositionSummary)
def dashboard_summary(user_id: int = Depends(get_current_user_id), c: Components = Depends(components)):
    return c.positions.summary(user_id)


@router.get("/balance")
async def exchange_balance(user_id: int = Depends(get_current_user_id), c: Components = Depends(components)):
    """Available Indodax balance per currency, straight from the exchange."""
    return {"balance": await c.executor.get_balance(user_id)}


@router.get("/signal-stats")
def signal_stats(user_id: int = Depends(get_current_user_id), c: Components = Depends(components)):
    return get_signal_stats(c.engine, user_id)
