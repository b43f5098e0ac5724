"""Detect a human paused at a breakpoint.

While someone is stepping through code, outbound broadcasts are suppressed
so the viewer is not flooded and the debugger's terminal stays clean.
Capture itself is never paused.
"""

import sys
import traceback
from collections.abc import Callable, Iterable

# Substrings that appear in a thread's stack while an interactive debugger owns it.
# debugpy (pydevd) keeps helper threads alive for the whole session, so only its
# suspend routine counts as paused.
DEBUGGER_MARKERS = ("pdb.py", "bdb.py", "pudb", "ipdb", "in do_wait_suspend")


def thread_stacks() -> list[list[str]]:
    """Return the formatted stack of every live thread."""
    return [traceback.format_stack(frame) for frame in sys._current_frames().values()]


class DebugSessionDetector:
    """Boolean gate consulted before every broadcast."""

    def __init__(
        self,
        stacks: Callable[[], Iterable[Iterable[str]]] = thread_stacks,
        markers: tuple[str, ...] = DEBUGGER_MARKERS,
    ) -> None:
        self._stacks = stacks
        self._markers = markers

    def is_active(self) -> bool:
        """Return True if any thread is inside an interactive debugger."""
        for stack in self._stacks():
            for line in stack:
                if any(marker in line for marker in self._markers):
                    return True
        return False

