"""Security utilities."""

from .proxy_manager import ProxyManager

__all__ = ["ProxyManager"]
