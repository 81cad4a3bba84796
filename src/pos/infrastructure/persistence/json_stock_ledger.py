"""JSON-file-backed Stock Ledger.

``stock.json`` maps ``stock_id -> color -> size -> quantity``; colorless
or sizeless stock uses the empty string as the key.  Each adjustment is a
bounded delta applied by one read-modify-write under the document lock.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

from pos.domain.exceptions import InventorySyncError, StorageError
from pos.domain.model.stock import StockLevel
from pos.domain.model.value_objects import StockKey
from pos.domain.repository.stock_ledger import StockLedger
from pos.infrastructure.persistence.json_document import (
    document_lock,
    ensure_file,
    read_json,
    write_json,
)


class JsonStockLedger(StockLedger):

    def __init__(self, file_path: Path) -> None:
        self._file_path = file_path
        ensure_file(self._file_path, {})

    # --- StockLedger interface ------------------------------------------------

    def check_stock(self, key: StockKey) -> int:
        return self._quantity(self._load_raw(), key)

    def list_levels(self) -> list[StockLevel]:
        levels: list[StockLevel] = []
        for stock_id, colors in sorted(self._load_raw().items()):
            for color, sizes in sorted(colors.items()):
                for size, quantity in sorted(sizes.items()):
                    levels.append(StockLevel(StockKey(stock_id, color, size), quantity))
        return levels

    def set_stock(self, key: StockKey, quantity: int) -> None:
        with document_lock(self._file_path):
            raw = self._load_raw()
            raw.setdefault(key.stock_id, {}).setdefault(key.color, {})[key.size] = quantity
            write_json(self._file_path, raw)

    async def reduce_stock(self, key: StockKey, quantity: int) -> None:
        await asyncio.to_thread(self._adjust, key, quantity, True)

    async def restore_stock(self, key: StockKey, quantity: int) -> None:
        await asyncio.to_thread(self._adjust, key, quantity, False)

    # --- Internal helpers -----------------------------------------------------

    def _adjust(self, key: StockKey, quantity: int, reduce: bool) -> None:
        try:
            with document_lock(self._file_path):
                raw = self._load_raw()
                level = StockLevel(key, self._quantity(raw, key))
                if reduce:
                    level.reduce(quantity)
                else:
                    level.restore(quantity)
                raw.setdefault(key.stock_id, {}).setdefault(key.color, {})[key.size] = level.quantity
                write_json(self._file_path, raw)
        except StorageError as exc:
            raise InventorySyncError(f"Stock ledger unavailable: {exc}") from exc

    @staticmethod
    def _quantity(raw: dict, key: StockKey) -> int:
        return max(int(raw.get(key.stock_id, {}).get(key.color, {}).get(key.size, 0)), 0)

    def _load_raw(self) -> dict:
        return read_json(self._file_path)
