"""Wiring: one instance of every engine service, sharing a database engine."""

from dataclasses import dataclass

from autotrader.engine.order_reconciler import OrderReconciler
from autotrader.engine.orders import OrderBook
from autotrader.engine.position_monitor import PositionMonitor
from autotrader.engine.positions import PositionManager
from autotrader.engine.signal_executor import SignalExecutor
from autotrader.engine.signal_scheduler import SignalScheduler
from autotrader.engine.signals import SignalBook
from autotrader.services.credentials import CredentialResolver
from autotrader.services.indodax_client import IndodaxPublicClient
from autotrader.services.notifier import Notifier
from autotrader.services.signal_generator import OpenAISignalGenerator


@dataclass
class Components:
    engine: object
    positions: PositionManager
    orders: OrderBook
    signals: SignalBook
    market: IndodaxPublicClient
    notifier: Notifier
    executor: SignalExecutor
    monitor: PositionMonitor
    reconciler: OrderReconciler
    signal_scheduler: SignalScheduler


def build_components(engine, market=None, client_factory=None, generator=None, notifier=None) -> Components:
    market = market or IndodaxPublicClient()
    client_factory = client_factory or CredentialResolver(engine)
    generator = generator or OpenAISignalGenerator(market)
    notifier = notifier or Notifier(engine)

    positions = PositionManager(engine)
    orders = OrderBook(engine)
    signals = SignalBook(engine)
    executor = SignalExecutor(signals, positions, orders, client_factory, market, notifier)

    return Components(
        engine=engine,
        positions=positions,
        orders=orders,
        signals=signals,
        market=market,
        notifier=notifier,
        executor=executor,
        monitor=PositionMonitor(positions, orders, market, client_factory, notifier),
        reconciler=OrderReconciler(orders, positions, client_factory, notifier),
        signal_scheduler=SignalScheduler(engine, signals, positions, executor, generator, notifier),
    )


_components: Components | None = None


def get_components() -> Components:
    global _components
    if _components is None:
        from autotrader.database import engine

        _components = build_components(engine)
    return _components
