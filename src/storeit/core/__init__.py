"""storeit Core — configuration loading and binding."""

from storeit.core.config import Config, config_properties

__all__ = [
    "Config",
    "config_properties",
]
