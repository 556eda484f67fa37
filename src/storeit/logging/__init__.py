"""storeit Logging — logging port and the structlog adapter."""

from storeit.logging.port import LoggingPort
from storeit.logging.structlog_adapter import StructlogAdapter

__all__ = ["LoggingPort", "StructlogAdapter"]
