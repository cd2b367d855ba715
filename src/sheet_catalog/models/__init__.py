"""Configuration models for the sheet catalog."""

from .config import BackendConfig, CatalogConfig, LibraryConfig, load_config, save_config

__all__ = ["BackendConfig", "CatalogConfig", "LibraryConfig", "load_config", "save_config"]
