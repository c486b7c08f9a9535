"""Prewarmed browser pool and virtual display management."""

from .display import DisplayAllocator, DisplayInfo
from .prewarmed_pool import PrewarmedBrowser, PrewarmedBrowserPool

__all__ = ["DisplayAllocator", "DisplayInfo", "PrewarmedBrowser", "PrewarmedBrowserPool"]
