"""
lease_config -- single public entrypoint for engine configuration.

Responsibility:
    ``get_active_config()`` is the only way runtime code obtains
    configuration.  The file is chosen in this order:

    1. the explicit ``path`` argument
    2. the ``LEASE_CONFIG_PATH`` environment variable
    3. the packaged ``defaults.yaml``

Architecture position:
    Configuration layer.  Sits above ``lease_kernel``; the kernel MUST
    NEVER import from ``lease_config``.  ``bridges`` translates the parsed
    configuration into kernel collaborators.

Failure modes:
    - ``FileNotFoundError`` -- the chosen file does not exist.
    - ``ValueError`` / ``KeyError`` -- schema validation failures.
"""

from __future__ import annotations

import os
from pathlib import Path

from lease_config.loader import compute_checksum, load_engine_config, parse_engine_config
from lease_config.schema import EngineConfig, PostingAccounts, VoucherNumbering
from lease_kernel.logging_config import get_logger

_logger = get_logger("config")

CONFIG_PATH_ENV = "LEASE_CONFIG_PATH"
DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"


def get_active_config(path: Path | str | None = None) -> EngineConfig:
    """Load and validate the active engine configuration."""
    if path is None:
        path = os.environ.get(CONFIG_PATH_ENV) or DEFAULT_CONFIG_PATH
    config_path = Path(path)
    config = load_engine_config(config_path)
    _logger.info(
        "LEASE_CONFIG_TRACE",
        extra={
            "config_path": str(config_path),
            "checksum": config.checksum,
            "currency": config.currency,
            "approval_threshold": config.approval_threshold,
            "tax_rate_count": len(config.tax_rates),
        },
    )
    return config


__all__ = [
    "CONFIG_PATH_ENV",
    "DEFAULT_CONFIG_PATH",
    "EngineConfig",
    "PostingAccounts",
    "VoucherNumbering",
    "compute_checksum",
    "get_active_config",
    "parse_engine_config",
]
