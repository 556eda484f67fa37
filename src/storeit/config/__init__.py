"""Typed configuration property classes for each storeit subsystem."""

from storeit.config.properties import LoggingProperties, StoreProperties

__all__ = [
    "LoggingProperties",
    "StoreProperties",
]
