"""
Configuration for the plcbridge command line and pipelines.

Settings are read from a YAML file::

    database_path: tags.db
    csv_delimiter: ";"
    log_level: INFO
    dialect_overrides:
      siemens: ./dialects/siemens_de.yaml

Every key is optional. A missing or unreadable file yields the defaults.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional, Union

import yaml

from .dialects import VendorDialect, get_dialect, load_dialect_file

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_PATH = "plcbridge.db"


@dataclass
class BridgeConfig:
    """Runtime settings shared by the CLI commands."""
    database_path: str = DEFAULT_DATABASE_PATH
    csv_delimiter: str = ","
    log_level: str = "WARNING"
    dialect_overrides: Dict[str, str] = field(default_factory=dict)

    def dialect_for(self, vendor: str) -> VendorDialect:
        """Return the dialect for a vendor, honouring any configured override file."""
        key = str(vendor).strip().lower()
        override = self.dialect_overrides.get(key)
        if override:
            return load_dialect_file(override)
        return get_dialect(key)


def load_config(config_path: Optional[Union[str, Path]] = None) -> BridgeConfig:
    """Load configuration from a YAML file, falling back to defaults."""
    if not config_path:
        return BridgeConfig()

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            config_data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"Could not load config from {config_path}: {e}")
        return BridgeConfig()

    if not isinstance(config_data, dict):
        logger.warning(f"Ignoring config {config_path}: top level is not a mapping")
        return BridgeConfig()

    overrides = config_data.get("dialect_overrides") or {}
    return BridgeConfig(
        database_path=str(config_data.get("database_path", DEFAULT_DATABASE_PATH)),
        csv_delimiter=str(config_data.get("csv_delimiter", ",")),
        log_level=str(config_data.get("log_level", "WARNING")).upper(),
        dialect_overrides={str(k).lower(): str(v) for k, v in overrides.items()},
    )
