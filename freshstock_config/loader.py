"""
Configuration Loader (``freshstock_config.loader``).

Responsibility
--------------
Loads YAML configuration files and parses them into the typed
``freshstock_config.schema`` dataclasses.

Architecture position
---------------------
**Config layer** -- infrastructure.  Depends on the kernel only for
exceptions and logging.  Services receive parsed sections; only
``build_inventory_orchestrator`` loads files.

Invariants enforced
-------------------
* Every parsed object is a frozen dataclass from ``schema.py``.
* Keys absent from a file take the schema defaults, which match the
  packaged ``defaults.yaml``.
* ``compute_checksum`` produces a deterministic SHA-256 hash for
  configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* A document that is not a mapping, or invalid values
  -> ``ConfigurationError``.
"""

from __future__ import annotations

import hashlib
import json
from importlib import resources
from pathlib import Path
from typing import Any

import yaml

from freshstock_config.schema import FreshstockConfig
from freshstock_kernel.exceptions import ConfigurationError
from freshstock_kernel.logging_config import get_logger

logger = get_logger("config.loader")

DEFAULTS_RESOURCE = "defaults.yaml"


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ConfigurationError: if the top level is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigurationError(str(path), "top level must be a mapping")
    return data


def load_default_data() -> dict[str, Any]:
    """Parsed contents of the packaged ``defaults.yaml``."""
    text = resources.files("freshstock_config").joinpath(DEFAULTS_RESOURCE).read_text()
    return yaml.safe_load(text) or {}


def parse_config(data: dict[str, Any]) -> FreshstockConfig:
    """Parse a configuration mapping into ``FreshstockConfig``."""
    return FreshstockConfig.from_dict(data)


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def load_config(path: Path | str | None = None) -> FreshstockConfig:
    """
    Load configuration from ``path``, or the packaged defaults when None.
    """
    if path is None:
        data = load_default_data()
        source = f"package:{DEFAULTS_RESOURCE}"
    else:
        data = load_yaml_file(Path(path))
        source = str(path)

    config = parse_config(data)
    logger.info(
        "config_loaded",
        extra={"source": source, "checksum": compute_checksum(data)},
    )
    return config
