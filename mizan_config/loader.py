"""
Configuration loader (``mizan_config.loader``).

Responsibility
--------------
Loads YAML files and parses them into the frozen ``mizan_config.schema``
dataclasses.  The single runtime entry point is
``mizan_config.get_active_config()``; services never call this module.

Invariants enforced
-------------------
* Every parsed object is a frozen dataclass from ``schema.py``.
* Money-like values are read through ``str`` into ``Decimal`` so YAML
  floats never leak binary noise.
* ``validate_config`` reports every problem at once.
* ``compute_checksum`` is deterministic for identical data.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown keys or bad values  -> ``ValueError`` listing every problem.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import fields
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from mizan_config.schema import (
    AccountMapping,
    JournalCodes,
    LedgerConfig,
    MatchingPolicy,
    VatRegime,
)

_SECTIONS = {
    "accounts": AccountMapping,
    "journals": JournalCodes,
    "matching": MatchingPolicy,
}
_TOP_LEVEL = {"config_id", "version", "currency", "vat_regime", *_SECTIONS}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the document is not a mapping.
    """
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Configuration root must be a mapping: {path}")
    return data


def merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursive dict merge; override wins on leaves."""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _to_decimal(value: Any, where: str, errors: list[str]) -> Decimal | None:
    try:
        parsed = Decimal(str(value))
    except InvalidOperation:
        errors.append(f"{where}: not a number: {value!r}")
        return None
    if not parsed.is_finite():
        errors.append(f"{where}: must be a finite number, got {value!r}")
        return None
    return parsed


def _parse_section(name: str, data: Any, errors: list[str]) -> Any:
    cls = _SECTIONS[name]
    if data is None:
        return cls()
    if not isinstance(data, dict):
        errors.append(f"{name}: expected a mapping")
        return cls()

    known = {f.name for f in fields(cls)}
    kwargs: dict[str, Any] = {}
    for key, value in data.items():
        if key not in known:
            errors.append(f"{name}.{key}: unknown key")
            continue
        default = getattr(cls(), key)
        if isinstance(default, Decimal):
            parsed = _to_decimal(value, f"{name}.{key}", errors)
            if parsed is not None:
                kwargs[key] = parsed
        elif isinstance(default, int):
            if isinstance(value, bool) or not isinstance(value, int):
                errors.append(f"{name}.{key}: expected an integer, got {value!r}")
            else:
                kwargs[key] = value
        else:
            if value is None or str(value).strip() == "":
                errors.append(f"{name}.{key}: must not be empty")
            else:
                kwargs[key] = str(value)
    return cls(**kwargs)


def parse_config(data: dict[str, Any]) -> LedgerConfig:
    """
    Parse a ``LedgerConfig`` from a (merged) dict.

    Raises:
        ValueError: listing every unknown key and invalid value.
    """
    errors: list[str] = []
    for key in data:
        if key not in _TOP_LEVEL:
            errors.append(f"{key}: unknown key")

    regime = VatRegime.ACCRUAL
    raw_regime = data.get("vat_regime", VatRegime.ACCRUAL.value)
    try:
        regime = VatRegime(raw_regime)
    except ValueError:
        errors.append(
            f"vat_regime: expected one of {[r.value for r in VatRegime]}, got {raw_regime!r}"
        )

    sections = {name: _parse_section(name, data.get(name), errors) for name in _SECTIONS}

    config = LedgerConfig(
        config_id=str(data.get("config_id", "cgnc-default")),
        version=data.get("version", 1),
        currency=str(data.get("currency", "MAD")),
        vat_regime=regime,
        accounts=sections["accounts"],
        journals=sections["journals"],
        matching=sections["matching"],
        checksum=compute_checksum(data),
    )
    errors.extend(validate_config(config))
    if errors:
        raise ValueError(
            "Configuration validation failed:\n"
            + "\n".join(f"  - {e}" for e in errors)
        )
    return config


def validate_config(config: LedgerConfig) -> list[str]:
    """Structural checks that span several fields."""
    errors: list[str] = []
    if not isinstance(config.version, int) or isinstance(config.version, bool):
        errors.append(f"version: expected an integer, got {config.version!r}")
    if len(config.currency) != 3:
        errors.append(f"currency: expected an ISO 4217 code, got {config.currency!r}")

    if config.accounts.vat_collected == config.accounts.vat_collected_pending:
        errors.append(
            "accounts: vat_collected and vat_collected_pending must differ"
        )

    policy = config.matching
    decimals = ("amount_weight", "reference_weight", "date_weight", "threshold", "amount_tolerance")
    non_finite = [name for name in decimals if not getattr(policy, name).is_finite()]
    for name in non_finite:
        errors.append(f"matching.{name}: must be a finite number, got {getattr(policy, name)}")
    if non_finite:
        return errors

    for name in ("amount_weight", "reference_weight", "date_weight", "threshold"):
        value = getattr(policy, name)
        if not Decimal("0") <= value <= Decimal("1"):
            errors.append(f"matching.{name}: must lie in [0, 1], got {value}")
    total = policy.amount_weight + policy.reference_weight + policy.date_weight
    if total < policy.threshold:
        errors.append(
            f"matching: weights sum to {total}, below threshold {policy.threshold}"
        )
    if policy.date_window_days < 0:
        errors.append("matching.date_window_days: must not be negative")
    if policy.amount_tolerance <= 0:
        errors.append("matching.amount_tolerance: must be positive")
    return errors


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
