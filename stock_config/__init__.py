"""
stock_config -- single public entrypoint for ledger configuration.

Responsibility:
    ``get_active_config()`` is the way services obtain a LedgerConfig at
    runtime.  It reads the YAML file named by ``STOCK_LEDGER_CONFIG`` when
    that variable is set, otherwise the packaged ``default.yaml``.

Failure modes:
    - ``FileNotFoundError`` -- STOCK_LEDGER_CONFIG names a missing file.
    - ``ValueError`` -- invalid or unknown configuration values.
"""

from __future__ import annotations

import os
from pathlib import Path

from stock_config.loader import compute_checksum, load_yaml_file, parse_ledger_config
from stock_config.schema import LedgerConfig
from stock_kernel.logging_config import get_logger

logger = get_logger("config")

CONFIG_ENV_VAR = "STOCK_LEDGER_CONFIG"

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "default.yaml"


def get_active_config(path: Path | str | None = None) -> LedgerConfig:
    """
    Load the active LedgerConfig.

    Resolution order: explicit ``path``, then ``$STOCK_LEDGER_CONFIG``,
    then the packaged default.
    """
    if path is None:
        path = os.environ.get(CONFIG_ENV_VAR) or _DEFAULT_CONFIG_PATH
    path = Path(path)

    data = load_yaml_file(path)
    config = parse_ledger_config(data)

    logger.info(
        "stock_config_trace",
        extra={
            "config_path": str(path),
            "checksum": compute_checksum(data),
            "deduction_policy": config.deduction_policy,
        },
    )
    return config


__all__ = ["LedgerConfig", "get_active_config", "CONFIG_ENV_VAR"]
