"""Transient "these nodes are invalid" feedback for the canvas.

The channel holds one token: a set of node ids and an optional deadline.
A new ``highlight`` call replaces the token outright, which is the only
way an older expiry is cancelled. Expiry is evaluated lazily against an
injected clock, so there is no timer thread and tests can drive time by
hand.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

from outreachflow.observability.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

log = get_logger(__name__)

DEFAULT_HIGHLIGHT_MS = 5000


@dataclass(frozen=True)
class HighlightToken:
    """The current highlight: node ids plus a deadline in clock seconds."""

    node_ids: frozenset[str]
    deadline: float | None = None

    def expired(self, now: float) -> bool:
        return self.deadline is not None and now >= self.deadline


class HighlightChannel:
    """Single, last-write-wins highlight set with optional expiry.

    Args:
        clock: Returns the current time in seconds (``time.monotonic``).
        default_duration_ms: Duration used when ``highlight`` gets none.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        default_duration_ms: int = DEFAULT_HIGHLIGHT_MS,
    ) -> None:
        self._clock = clock
        self.default_duration_ms = default_duration_ms
        self._token: HighlightToken | None = None

    def highlight(self, node_ids: str | Iterable[str], duration_ms: int | None = None) -> None:
        """Replace the highlighted set.

        Args:
            node_ids: Nodes to flag. A single id may be passed as a plain string.
            duration_ms: Lifetime of the highlight. ``<= 0`` keeps it until
                :meth:`clear` or the next ``highlight`` call.
        """
        if isinstance(node_ids, str):
            node_ids = (node_ids,)
        if duration_ms is None:
            duration_ms = self.default_duration_ms
        deadline = self._clock() + duration_ms / 1000 if duration_ms > 0 else None
        self._token = HighlightToken(frozenset(node_ids), deadline)
        log.debug("highlight_set", nodes=sorted(self._token.node_ids), duration_ms=duration_ms)

    def clear(self) -> None:
        self._token = None

    def _current(self) -> HighlightToken | None:
        if self._token is not None and self._token.expired(self._clock()):
            self._token = None
        return self._token

    @property
    def highlighted(self) -> frozenset[str]:
        """Currently highlighted node ids (empty once expired)."""
        token = self._current()
        return token.node_ids if token else frozenset()

    @property
    def deadline(self) -> float | None:
        """Clock time at which the current highlight lapses, if any."""
        token = self._current()
        return token.deadline if token else None

    def is_highlighted(self, node_id: str) -> bool:
        return node_id in self.highlighted
