"""Bot positions API."""

from fastapi import APIRouter, Depends

from autotrader.engine.components import Components
from autotrader.engine.errors import NotFoundError
from autotrader.schemas.position import PositionRead
from autotrader.api.deps import components, get_current_user_id

router = APIRouter(prefix="/api/positions", tags=["positions"])


@router.get("", response_model=list[PositionRead])
def list_positions(
    pair: str | None = None,
    user_id: int = Depends(get_current_user_id),
    c: Components = Depends(components),
):
    """OPEN positions, oldest first."""
    return c.positions.list_open(user_id, pair)


@router.get("/{position_id}", response_model=PositionRead)
def get_position(position_id: int, user_id: int = Depends(get_current_user_id), c: Components = Depends(components)):
    position = c.positions.get(position_id)
    if position.user_id != user_id:
        raise NotFoundError(f"Position not found: {position_id}")
    return position


@router.post("/{position_id}/close", response_model=PositionRead)
async def close_position(
    position_id: int,
    user_id: int = Depends(get_current_user_id),
    c: Components = Depends(components),
):
    """Sell the position at the current price and close it (reason MANUAL)."""
    return await c.executor.close_position_manually(position_id, user_id)
