"""Application services: Show Stock (query) and Set Stock (stock-take)."""

from __future__ import annotations

from dataclasses import dataclass

import structlog

from pos.domain.exceptions import ValidationError
from pos.domain.model.value_objects import StockKey
from pos.domain.repository.stock_ledger import StockLedger

log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class StockLineDTO:
    stock_id: str
    color: str
    size: str
    quantity: int


class ShowStockHandler:

    def __init__(self, stock_ledger: StockLedger) -> None:
        self._stock_ledger = stock_ledger

    def handle(self, stock_id: str | None = None) -> list[StockLineDTO]:
        levels = self._stock_ledger.list_levels()
        return [
            StockLineDTO(
                stock_id=level.key.stock_id,
                color=level.key.color,
                size=level.key.size,
                quantity=level.quantity,
            )
            for level in levels
            if stock_id is None or level.key.stock_id == stock_id
        ]


class SetStockHandler:

    def __init__(self, stock_ledger: StockLedger) -> None:
        self._stock_ledger = stock_ledger

    def handle(self, stock_id: str, quantity: int, color: str = "", size: str = "") -> None:
        """Overwrite the on-hand quantity of one cell."""
        if quantity < 0:
            raise ValidationError("Stock quantity cannot be negative")
        key = StockKey(stock_id, color, size)
        previous = self._stock_ledger.check_stock(key)
        self._stock_ledger.set_stock(key, quantity)
        log.info("stock_set", stock=str(key), previous=previous, quantity=quantity)
