"""
Connection liveness bookkeeping.

A session trusts its connection without a round trip while it has been idle
for less than its idle budget. Past the budget the connection is STALE and
must be probed; a failed probe means DEAD and the session reconnects.

    FRESH ──(budget exceeded)──> STALE ──> PROBING ──> LIVE
                                              │
                                              └──> DEAD ──> RECONNECTING ──> FRESH

The tracker holds no connection and does no I/O; DatabaseSession drives
the transitions.
"""
import time
from enum import Enum
from typing import Callable, Optional


class LinkState(str, Enum):
    """Liveness state of a session's connection."""
    FRESH = "fresh"
    STALE = "stale"
    PROBING = "probing"
    LIVE = "live"
    DEAD = "dead"
    RECONNECTING = "reconnecting"
    CLOSED = "closed"


class LivenessTracker:
    """
    Tracks the last confirmed-live interaction and the idle budget.

    Attributes:
        last_activity: Clock reading of the last confirmed-live interaction
        idle_timeout: Seconds of idleness trusted without probing
        state: Current LinkState

    Example:
        >>> tracker = LivenessTracker()
        >>> tracker.reset(idle_timeout=14400)
        >>> tracker.is_fresh()
        True
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self.last_activity: Optional[float] = None
        self.idle_timeout: float = 0.0
        self.state = LinkState.DEAD

    def reset(self, idle_timeout: float) -> None:
        """Start a new budget after a successful (re)connect."""
        self.idle_timeout = idle_timeout
        self.last_activity = self._clock()
        self.state = LinkState.FRESH

    def touch(self) -> None:
        """Record a confirmed-live interaction."""
        self.last_activity = self._clock()

    def invalidate(self) -> None:
        """Forget the last activity so the next check must probe."""
        self.last_activity = None
        self.state = LinkState.STALE

    def idle_for(self) -> float:
        """Seconds since the last confirmed-live interaction."""
        if self.last_activity is None:
            return float("inf")
        return self._clock() - self.last_activity

    def is_fresh(self) -> bool:
        """True while the connection is inside its idle budget."""
        return self.idle_for() < self.idle_timeout

    def transition(self, state: LinkState) -> LinkState:
        self.state = state
        return state
