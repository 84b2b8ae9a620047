"""
dairy_config -- single public entrypoint for runtime configuration.

Responsibility:
    ``get_active_config()`` returns the parsed ``DairyConfigSet`` (appro and
    stock module configs) for a named configuration set.  YAML handling
    lives in ``dairy_config.loader``.

Architecture position:
    Configuration -- above ``dairy_modules``.  The kernel and engines MUST
    NEVER import from ``dairy_config``.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``DAIRY_CONFIG_TRACE`` log entry with the set name, version and
    checksum.
"""

from __future__ import annotations

import logging
from pathlib import Path

from dairy_config.loader import DairyConfigSet, load_config_set

_logger = logging.getLogger("dairy_kernel.config")

_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"


def get_active_config(name: str = "default", config_dir: Path | None = None) -> DairyConfigSet:
    """
    Load the configuration set ``<config_dir>/<name>.yaml``.

    Raises:
        FileNotFoundError: no such configuration set.
    """
    sets_dir = config_dir or _DEFAULT_CONFIG_DIR
    path = sets_dir / f"{name}.yaml"
    if not path.is_file():
        raise FileNotFoundError(f"Configuration set not found: {path}")

    config_set = load_config_set(path)

    _logger.info(
        "DAIRY_CONFIG_TRACE",
        extra={
            "trace_type": "DAIRY_CONFIG_TRACE",
            "config_set_name": config_set.name,
            "config_set_version": config_set.version,
            "checksum": config_set.checksum,
        },
    )
    return config_set


__all__ = ["DairyConfigSet", "get_active_config"]
