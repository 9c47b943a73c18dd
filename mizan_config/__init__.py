"""
mizan_config -- single public entrypoint for ledger configuration.

Responsibility:
    ``get_active_config()`` is the only way services obtain configuration.
    It loads the packaged ``defaults.yaml``, merges an optional override
    file over it, validates the result and returns a frozen
    ``LedgerConfig``.

Architecture position:
    Configuration -- sits above ``mizan_kernel`` and below
    ``mizan_services``.  The kernel never imports from this package.

Failure modes:
    - ``FileNotFoundError`` -- the override file does not exist.
    - ``ValueError`` -- unknown keys or invalid values (every problem
      listed in one message).

Audit relevance:
    Every successful call emits a ``MIZAN_CONFIG_TRACE`` log record with
    the config id, version, VAT regime and checksum, which ties the posted
    ledger back to the configuration that produced it.
"""

from __future__ import annotations

import os
from pathlib import Path

from mizan_config.loader import load_yaml_file, merge, parse_config
from mizan_config.schema import (
    AccountMapping,
    JournalCodes,
    LedgerConfig,
    MatchingPolicy,
    VatRegime,
)
from mizan_kernel.logging_config import get_logger

_logger = get_logger("config")

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"
CONFIG_ENV_VAR = "MIZAN_CONFIG"


def get_active_config(path: str | Path | None = None) -> LedgerConfig:
    """
    Return the active ledger configuration.

    Args:
        path: Override file merged over the defaults.  When omitted, the
            ``MIZAN_CONFIG`` environment variable is consulted; when that
            is unset too, the defaults are used as shipped.
    """
    data = load_yaml_file(DEFAULTS_PATH)
    source = path or os.environ.get(CONFIG_ENV_VAR)
    if source:
        data = merge(data, load_yaml_file(Path(source)))

    config = parse_config(data)

    _logger.info(
        "MIZAN_CONFIG_TRACE",
        extra={
            "trace_type": "MIZAN_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "vat_regime": config.vat_regime.value,
            "checksum": config.checksum,
            "source": str(source) if source else "defaults",
        },
    )
    return config


__all__ = [
    "AccountMapping",
    "JournalCodes",
    "LedgerConfig",
    "MatchingPolicy",
    "VatRegime",
    "get_active_config",
]
