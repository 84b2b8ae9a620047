"""
Configuration Loader (``dairy_config.loader``).

Responsibility
--------------
Loads a YAML configuration set and parses it into the typed module
configurations (``ApproConfig``, ``StockConfig``).

Architecture position
---------------------
**Config layer** -- sits above ``dairy_modules`` (it builds their config
dataclasses) and is never imported by ``dairy_kernel`` or ``dairy_engines``.

Invariants enforced
-------------------
* Unknown top-level sections are rejected; a typo never silently falls back
  to defaults.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the parsed
  YAML for configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown section or key  -> ``ValueError`` / ``TypeError``.
* Inconsistent tolerance thresholds  -> ``ThresholdInvalidError``.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from dairy_modules.appro.config import ApproConfig
from dairy_modules.stock.config import StockConfig

KNOWN_SECTIONS = frozenset({"name", "version", "appro", "stock"})


@dataclass(frozen=True)
class DairyConfigSet:
    """A parsed configuration set."""
    name: str
    version: int
    appro: ApproConfig
    stock: StockConfig
    checksum: str


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        data = yaml.safe_load(f)
    return data or {}


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def parse_config_set(data: dict[str, Any]) -> DairyConfigSet:
    """Build a DairyConfigSet from an already-loaded mapping."""
    unknown = set(data) - KNOWN_SECTIONS
    if unknown:
        raise ValueError(f"Unknown configuration sections: {', '.join(sorted(unknown))}")

    return DairyConfigSet(
        name=str(data.get("name", "unnamed")),
        version=int(data.get("version", 1)),
        appro=ApproConfig.from_dict(data.get("appro") or {}),
        stock=StockConfig.from_dict(data.get("stock") or {}),
        checksum=compute_checksum(data),
    )


def load_config_set(path: Path) -> DairyConfigSet:
    """Load and parse the configuration set stored in ``path``."""
    return parse_config_set(load_yaml_file(path))
