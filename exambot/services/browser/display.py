"""Virtual X display allocation and remote access details."""

import asyncio
from dataclasses import dataclass
from typing import List, Optional, Set

from loguru import logger


@dataclass(frozen=True)
class DisplayInfo:
    """Remote access details for a browser running on a virtual display."""

    display: str
    novnc_url: str
    vnc_port: int

    @classmethod
    def for_display(
        cls,
        display: str,
        server_ip: str,
        novnc_base_port: int = 6080,
        vnc_base_port: int = 5900,
    ) -> "DisplayInfo":
        """
        Build access details for display ``:n``.

        Display ``:n`` is served by noVNC on ``novnc_base_port + n`` and by
        VNC on ``vnc_base_port + n``.

        Args:
            display: X display name (e.g. ":3")
            server_ip: Public address of the host running the displays
            novnc_base_port: noVNC port of display ``:0``
            vnc_base_port: VNC port of display ``:0``

        Raises:
            ValueError: If the display name is not of the form ``:n``
        """
        number = display_number(display)
        return cls(
            display=display,
            novnc_url=f"http://{server_ip}:{novnc_base_port + number}/vnc.html",
            vnc_port=vnc_base_port + number,
        )


def display_number(display: str) -> int:
    """Numeric part of an X display name like ``:3``."""
    if not display.startswith(":") or not display[1:].isdigit():
        raise ValueError(f"Invalid display name: {display!r}")
    return int(display[1:])


class DisplayAllocator:
    """Hands out a fixed set of X displays, one browser per display."""

    def __init__(self, count: int = 20, first: int = 1):
        self.displays: List[str] = [f":{n}" for n in range(first, first + count)]
        self._active: Set[str] = set()
        self._lock = asyncio.Lock()

    async def allocate(self) -> Optional[str]:
        """
        Reserve the lowest free display.

        Returns:
            Display name, or None when every display is busy
        """
        async with self._lock:
            for display in self.displays:
                if display not in self._active:
                    self._active.add(display)
                    logger.debug(
                        f"Allocated display {display} ({len(self._active)}/{len(self.displays)})"
                    )
                    return display
        logger.warning("All displays busy")
        return None

    def release(self, display: str) -> None:
        if display in self._active:
            self._active.discard(display)
            logger.debug(f"Released display {display}")

    def release_all(self) -> None:
        self._active.clear()

    @property
    def active_count(self) -> int:
        return len(self._active)

    def is_active(self, display: str) -> bool:
        return display in self._active
