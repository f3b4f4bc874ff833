"""Logging utilities."""
from __future__ import annotations

import logging
import logging.config
from pathlib import Path

import yaml

# ``extra=`` keys the engine attaches to its records.
ENGINE_FIELDS = (
    "operation",
    "entity",
    "entity_id",
    "kind",
    "rule",
    "actor",
    "budget_id",
    "payment_order_id",
    "recomputed_lines",
    "reason",
)


class EngineFormatter(logging.Formatter):
    """Standard line format followed by any engine context as ``key=value`` pairs."""

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = [
            f"{name}={getattr(record, name)}"
            for name in ENGINE_FIELDS
            if getattr(record, name, None) is not None
        ]
        if context:
            line = f"{line} {' '.join(context)}"
        return line


def configure_logging(config_path: Path | None = None) -> None:
    """Configure logging from the YAML configuration file if present."""
    if config_path is None:
        from relief_finance.core.config import get_settings

        config_path = get_settings().logging_config_path

    if config_path.exists():
        with config_path.open("r", encoding="utf-8") as config_file:
            logging.config.dictConfig(yaml.safe_load(config_file))
    else:
        logging.basicConfig(level=logging.INFO)


__all__ = ["ENGINE_FIELDS", "EngineFormatter", "configure_logging"]
