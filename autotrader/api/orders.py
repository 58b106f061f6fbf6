"""Tracked orders API — history, manual placement, cancellation."""

from fastapi import APIRouter, Depends

from autotrader.engine.components import Components
from autotrader.engine.errors import ConfigurationError
from autotrader.models.enums import OrderStatus
from autotrader.schemas.order import OrderCreate, OrderRead
from autotrader.api.deps import components, get_current_user_id

router = APIRouter(prefix="/api/orders", tags=["orders"])


@router.get("", response_model=list[OrderRead])
def list_orders(
    status: OrderStatus | None = None,
    pair: str | None = None,
    limit: int = 50,
    offset: int = 0,
    user_id: int = Depends(get_current_user_id),
    c: Components = Depends(components),
):
    return c.orders.list_orders(user_id=user_id, status=status, pair=pair, limit=limit, offset=offset)


@router.post("", response_model=OrderRead, status_code=201)
async def place_order(
    data: OrderCreate,
    user_id: int = Depends(get_current_user_id),
    c: Components = Depends(components),
):
    return await c.executor.place_manual_order(
        user_id,
        pair=data.pair,
        side=data.side,
        price=data.price,
        amount=data.amount,
        quote_amount=data.quote_amount,
        kind=data.kind,
    )


@router.post("/{order_id}/cancel", response_model=OrderRead)
async def cancel_order(order_id: int, user_id: int = Depends(get_current_user_id), c: Components = Depends(components)):
    c.orders.get(order_id, user_id=user_id)
    client = c.executor.client_factory(user_id)
    if client is None:
        raise ConfigurationError(f"User {user_id} has no active exchange keys")
    try:
        return await c.orders.cancel(client, order_id, user_id)
    finally:
        await client.close()
