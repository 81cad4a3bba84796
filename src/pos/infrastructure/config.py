"""Runtime settings read from ``POS_*`` environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Mapping

from pos.domain.exceptions import ConfigurationError
from pos.domain.model.value_objects import DEFAULT_CURRENCY

# When installed in editable mode the project root is the repo root.
DEFAULT_DATA_DIR = Path(__file__).resolve().parents[3] / "data"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
LOG_FORMATS = ("console", "json")


@dataclass(frozen=True)
class Settings:
    data_dir: Path = DEFAULT_DATA_DIR
    log_level: str = "INFO"
    log_format: str = "console"
    tax_rate: Decimal = Decimal("0")
    currency: str = DEFAULT_CURRENCY

    @staticmethod
    def from_env(environ: Mapping[str, str] | None = None) -> Settings:
        env = os.environ if environ is None else environ

        data_dir = Path(env["POS_DATA_DIR"]).expanduser() if env.get("POS_DATA_DIR") else DEFAULT_DATA_DIR

        log_level = env.get("POS_LOG_LEVEL", "INFO").strip().upper()
        if log_level not in LOG_LEVELS:
            raise ConfigurationError(
                f"POS_LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}, got '{log_level}'"
            )

        log_format = env.get("POS_LOG_FORMAT", "console").strip().lower()
        if log_format not in LOG_FORMATS:
            raise ConfigurationError(
                f"POS_LOG_FORMAT must be one of {', '.join(LOG_FORMATS)}, got '{log_format}'"
            )

        raw_rate = env.get("POS_TAX_RATE", "0").strip()
        try:
            tax_rate = Decimal(raw_rate)
        except InvalidOperation:
            raise ConfigurationError(f"POS_TAX_RATE must be a number, got '{raw_rate}'")
        if tax_rate < 0:
            raise ConfigurationError(f"POS_TAX_RATE cannot be negative, got {tax_rate}")

        currency = env.get("POS_CURRENCY", DEFAULT_CURRENCY).strip().upper()
        if not currency:
            raise ConfigurationError("POS_CURRENCY cannot be empty")

        return Settings(
            data_dir=data_dir,
            log_level=log_level,
            log_format=log_format,
            tax_rate=tax_rate,
            currency=currency,
        )
