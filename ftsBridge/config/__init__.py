"""Configuration helpers."""

from .settings import FTSSettings, SolrSettings, get_settings, load_settings, reset_settings

__all__ = ["FTSSettings", "SolrSettings", "get_settings", "load_settings", "reset_settings"]
