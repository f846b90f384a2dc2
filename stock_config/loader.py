"""
Configuration Loader (``stock_config.loader``).

Loads a YAML file and parses its ``ledger`` section into a
``LedgerConfig``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Invalid or unknown values  -> ``ValueError`` from ``LedgerConfig``.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from stock_config.schema import LedgerConfig


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the top level is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping, got {type(data).__name__}")
    return data


def parse_ledger_config(data: dict[str, Any]) -> LedgerConfig:
    """Parse the ``ledger`` section (or a bare mapping) into LedgerConfig."""
    section = data.get("ledger", data) if data else {}
    if section is None:
        section = {}
    if not isinstance(section, dict):
        raise ValueError("'ledger' section must be a mapping")
    return LedgerConfig.from_dict(section)


def load_config(path: Path | str) -> LedgerConfig:
    """Load a LedgerConfig from a YAML file."""
    return parse_ledger_config(load_yaml_file(Path(path)))


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
