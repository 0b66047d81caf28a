"""Configuration package."""

from infrastructure.config.loader import ConfigLoader, PipelineSettings

__all__ = ["ConfigLoader", "PipelineSettings"]
