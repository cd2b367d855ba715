"""Configuration model for the sheet catalog."""

import json
import os
from dataclasses import asdict, dataclass, field, fields, is_dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from ..exceptions import ConfigurationError


@dataclass
class BackendConfig:
    """Connection settings for the hosted backend."""
    url: str = ""
    anon_key: str = ""
    bucket: str = "music-sheets"
    timeout: int = 10  # seconds

    def require_credentials(self) -> None:
        """Raise ConfigurationError unless url and anon_key are set."""
        missing = [name for name in ("url", "anon_key") if not getattr(self, name)]
        if missing:
            raise ConfigurationError(
                f"Backend configuration missing: {', '.join(missing)}. "
                "Set them in the config file or via SHEET_CATALOG_URL / SHEET_CATALOG_ANON_KEY."
            )


@dataclass
class LibraryConfig:
    """Behavioral settings for the catalog and its listing surfaces."""
    root_admin_email: str = "admin@lege.music"
    page_size: int = 15
    suggestion_limit: int = 5
    top_songs_limit: int = 10


@dataclass
class CatalogConfig:
    """Main configuration model."""
    backend: BackendConfig = field(default_factory=BackendConfig)
    library: LibraryConfig = field(default_factory=LibraryConfig)

    @classmethod
    def default(cls) -> "CatalogConfig":
        return cls()

    @classmethod
    def from_env(cls, base: Optional["CatalogConfig"] = None) -> "CatalogConfig":
        """Overlay SHEET_CATALOG_* environment variables on a config."""
        config = base or cls()
        env = os.environ
        if env.get("SHEET_CATALOG_URL"):
            config.backend.url = env["SHEET_CATALOG_URL"]
        if env.get("SHEET_CATALOG_ANON_KEY"):
            config.backend.anon_key = env["SHEET_CATALOG_ANON_KEY"]
        if env.get("SHEET_CATALOG_BUCKET"):
            config.backend.bucket = env["SHEET_CATALOG_BUCKET"]
        if env.get("SHEET_CATALOG_ROOT_ADMIN"):
            config.library.root_admin_email = env["SHEET_CATALOG_ROOT_ADMIN"]
        return config


def _dict_to_dataclass(data: Dict[str, Any], dataclass_type):
    """Convert dict to dataclass recursively, ignoring unknown keys."""
    if not is_dataclass(dataclass_type):
        return data

    kwargs = {}
    for f in fields(dataclass_type):
        if f.name not in data:
            continue
        value = data[f.name]
        nested = f.default_factory if f.default_factory is not None and is_dataclass(f.default_factory) else None
        if nested is not None and isinstance(value, dict):
            kwargs[f.name] = _dict_to_dataclass(value, nested)
        else:
            kwargs[f.name] = value

    return dataclass_type(**kwargs)


def load_config(config_path: Path) -> CatalogConfig:
    """Load configuration from JSON file."""
    try:
        with open(config_path, 'r') as f:
            config_data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Cannot read config {config_path}: {e}") from e

    if not isinstance(config_data, dict):
        raise ConfigurationError(f"Config {config_path} must contain a JSON object")

    return _dict_to_dataclass(config_data, CatalogConfig)


def save_config(config: CatalogConfig, config_path: Path) -> None:
    """Save configuration to JSON file."""
    with open(config_path, 'w') as f:
        json.dump(asdict(config), f, indent=2)
