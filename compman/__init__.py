"""
compman - Component lifecycle manager for CLI extensions.

Installs components from source repositories into isolated directories,
tracks them in a durable registry, exposes their commands to the host and
checks for updates.
"""

__version__ = "1.0.0"

from .config import CompmanConfig, config
from .errors import ComponentError
from .manager import ComponentManager, ValidationReport
from .models import ComponentRecord, ComponentStatus, UpdateDelta

__all__ = [
    "__version__",
    "ComponentError",
    "ComponentManager",
    "ComponentRecord",
    "ComponentStatus",
    "CompmanConfig",
    "UpdateDelta",
    "ValidationReport",
    "config",
]
