"""
Configuration System

Manages configuration for lexis-kg with a layered approach.

Configuration Priority (highest to lowest):
    1. Programmatic (passed to LexisConfig())
    2. Environment variables (LEXIS_* prefix, loaded from .env by the CLI)
    3. Config file (LexisConfig.from_file)
    4. Built-in defaults

Modules:
    settings: LexisConfig class
    pricing: Model pricing for cost telemetry
"""

from lexis_kg.config.settings import LexisConfig

__all__ = ["LexisConfig"]
