"""Routing of page-turn keys that can arrive from two listener scopes.

The page view and the enclosing screen both bind the navigation keys, since
either may hold focus. A single key press must turn one page, so events from
the scope that does not hold focus are dropped, and a second event for the
same direction from another scope inside the debounce window is treated as
the same press.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

log = logging.getLogger(__name__)

SURFACE = "surface"
WINDOW = "window"
DIRECTIONS = ("next", "prev")


class InputRouter:
    def __init__(
        self,
        debounce: float = 0.15,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._debounce = debounce
        self._clock = clock
        self._focused: Optional[str] = None
        self._last: Optional[tuple[str, str, float]] = None  # direction, scope, time
        self._attached = True

    @property
    def attached(self) -> bool:
        return self._attached

    @property
    def focused_scope(self) -> Optional[str]:
        return self._focused

    def focus(self, scope: Optional[str]) -> None:
        self._focused = scope

    def dispatch(self, direction: str, scope: str) -> Optional[str]:
        """Return the direction to act on, or None if the event is dropped."""
        if not self._attached:
            return None
        if direction not in DIRECTIONS:
            raise ValueError(f"Unknown direction: {direction}")
        if self._focused is not None and scope != self._focused:
            log.debug("Dropped %s from unfocused scope %s", direction, scope)
            return None

        now = self._clock()
        if self._last is not None:
            last_direction, last_scope, at = self._last
            if (
                last_direction == direction
                and last_scope != scope
                and now - at < self._debounce
            ):
                log.debug("Dropped duplicate %s from %s", direction, scope)
                return None
        self._last = (direction, scope, now)
        return direction

    def detach(self) -> None:
        self._attached = False
        self._focused = None
        self._last = None
