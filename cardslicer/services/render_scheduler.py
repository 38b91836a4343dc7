from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum, auto
from typing import Callable, Hashable, Optional

from PySide6.QtCore import QObject, Signal

from cardslicer.config import STALE_RENDER_LIMIT
from cardslicer.errors import CardSlicerError

logger = logging.getLogger(__name__)


class RenderState(Enum):
    IDLE = auto()
    RENDERING = auto()
    ERROR = auto()


@dataclass(frozen=True)
class RenderTicket:
    key: Hashable
    generation: int


class RenderScheduler(QObject):
    """Latest-request-wins render bookkeeping for one viewport.

    Every ``request`` issues a new generation; ``complete``/``fail`` only
    take effect for the newest ticket, older completions are dropped.
    Re-requesting the key already in flight ``stale_limit`` times trips the
    watchdog and moves the scheduler to ERROR.
    """

    state_changed = Signal(object)          # RenderState
    render_applied = Signal(object, object)  # key, result
    render_discarded = Signal(object, int)   # key, generation
    render_failed = Signal(object, str)      # key, message
    watchdog_tripped = Signal(object, int)   # key, repeat count

    def __init__(self, stale_limit: int = STALE_RENDER_LIMIT, parent: Optional[QObject] = None):
        super().__init__(parent)
        self.stale_limit = stale_limit
        self._state = RenderState.IDLE
        self._generation = 0
        self._key: Optional[Hashable] = None
        self._repeats = 0
        self._result = None
        self._error: Optional[str] = None

    # ---- state ----
    @property
    def state(self) -> RenderState:
        return self._state

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def current_key(self) -> Optional[Hashable]:
        return self._key

    @property
    def result(self):
        return self._result

    @property
    def error(self) -> Optional[str]:
        return self._error

    def _set_state(self, state: RenderState) -> None:
        if state is not self._state:
            self._state = state
            self.state_changed.emit(state)

    def is_current(self, ticket: RenderTicket) -> bool:
        return ticket.generation == self._generation

    # ---- transitions ----
    def request(self, key: Hashable) -> Optional[RenderTicket]:
        """Start a render for *key*, superseding anything in flight.

        Returns None when the watchdog trips instead.
        """
        if self._state is RenderState.RENDERING and key == self._key:
            self._repeats += 1
            if self._repeats >= self.stale_limit:
                logger.warning("Render for %r still pending after %d repeated requests", key, self._repeats)
                self._generation += 1
                self._error = f"render for {key!r} stuck after {self._repeats} requests"
                self.watchdog_tripped.emit(key, self._repeats)
                self._repeats = 0
                self._set_state(RenderState.ERROR)
                return None
        else:
            self._repeats = 0

        self._generation += 1
        self._key = key
        self._error = None
        self._set_state(RenderState.RENDERING)
        return RenderTicket(key, self._generation)

    def complete(self, ticket: RenderTicket, result) -> bool:
        if not self.is_current(ticket):
            logger.warning("Discarding stale render %r (generation %d, latest %d)",
                           ticket.key, ticket.generation, self._generation)
            self.render_discarded.emit(ticket.key, ticket.generation)
            return False
        self._result = result
        self._repeats = 0
        self._set_state(RenderState.IDLE)
        self.render_applied.emit(ticket.key, result)
        return True

    def fail(self, ticket: RenderTicket, message: str) -> bool:
        if not self.is_current(ticket):
            self.render_discarded.emit(ticket.key, ticket.generation)
            return False
        self._error = message
        self._repeats = 0
        self._set_state(RenderState.ERROR)
        self.render_failed.emit(ticket.key, message)
        return True

    def cancel(self) -> None:
        """Abandon whatever is in flight; its completion will be discarded."""
        self._generation += 1
        self._repeats = 0
        self._set_state(RenderState.IDLE)

    def run(self, key: Hashable, render: Callable[[], object]):
        """Request, render synchronously and complete. Returns the applied result or None."""
        ticket = self.request(key)
        if ticket is None:
            return None
        try:
            result = render()
        except CardSlicerError as exc:
            self.fail(ticket, str(exc))
            raise
        return result if self.complete(ticket, result) else None
