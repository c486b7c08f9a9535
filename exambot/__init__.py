"""ExamBot - Automated exam slot booking bot."""

import importlib as _importlib
from typing import TYPE_CHECKING, Any

__version__ = "1.0.0"
__license__ = "MIT"

if TYPE_CHECKING:
    from .core.config_loader import load_config as load_config
    from .core.logger import setup_structured_logging as setup_structured_logging
    from .models.database import Database as Database
    from .services.booking.launcher import BookingLauncher as BookingLauncher
    from .services.browser.prewarmed_pool import PrewarmedBrowserPool as PrewarmedBrowserPool
    from .services.exam_finder.api_monitor import ExamApiMonitor as ExamApiMonitor
    from .services.scheduling.exam_scheduler import ExamScheduler as ExamScheduler
    from .utils.security.proxy_manager import ProxyManager as ProxyManager

# Explicit lazy-loading map: name -> (module_path, attribute_name)
_LAZY_MODULE_MAP = {
    # Core
    "load_config": ("exambot.core.config_loader", "load_config"),
    "setup_structured_logging": ("exambot.core.logger", "setup_structured_logging"),
    # Models
    "Database": ("exambot.models.database", "Database"),
    # Services
    "BookingLauncher": ("exambot.services.booking.launcher", "BookingLauncher"),
    "PrewarmedBrowserPool": ("exambot.services.browser.prewarmed_pool", "PrewarmedBrowserPool"),
    "ExamApiMonitor": ("exambot.services.exam_finder.api_monitor", "ExamApiMonitor"),
    "ExamScheduler": ("exambot.services.scheduling.exam_scheduler", "ExamScheduler"),
    # Security
    "ProxyManager": ("exambot.utils.security.proxy_manager", "ProxyManager"),
}

__all__ = list(_LAZY_MODULE_MAP.keys())


def __getattr__(name: str) -> Any:
    """Lazy import with explicit mapping - importlib based."""
    if name in _LAZY_MODULE_MAP:
        module_path, attr_name = _LAZY_MODULE_MAP[name]
        module = _importlib.import_module(module_path)
        attr = getattr(module, attr_name)
        globals()[name] = attr
        return attr
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
