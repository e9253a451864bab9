"""Domain value objects shared by the risk and backtest layers."""

from .account import AccountSnapshot
from .instrument import InstrumentConstraints
from .order import ExecutionResult, Order, OrderStatus
from .trade import TradeDirection, TradeRecord

__all__ = [
    "AccountSnapshot",
    "ExecutionResult",
    "InstrumentConstraints",
    "Order",
    "OrderStatus",
    "TradeDirection",
    "TradeRecord",
]
