"""
Core infrastructure shared by the transport adapters.

Structured logging helpers and the entity registry live here; neither depends
on a particular protocol.
"""

from .logging import configure_logging, get_logger, log_event
from .registry import EntityInformation, EntityRegistry, RegistryError, attribute_accessor, derive_resource_path

__all__ = [
    "EntityInformation",
    "EntityRegistry",
    "RegistryError",
    "attribute_accessor",
    "configure_logging",
    "derive_resource_path",
    "get_logger",
    "log_event",
]
