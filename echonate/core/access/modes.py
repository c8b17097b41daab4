"""
EchoNate Core Access — Mode State Machine
===========================================
Tracks the current privilege tier and governs transitions.

standard (initial) ⇄ advanced ⇄ research, any direction. Every transition
is caller-initiated and must carry a non-empty justification; there is no
automatic or time-based promotion. A rejected transition leaves the mode
unchanged.

The machine does not persist or audit. The dispatcher owns both so that a
transition and its audit event are written under the same lock.

Import from: echonate.core.access.modes
"""

import logging
from datetime import datetime
from typing import Optional

from echonate.core.types import (
    Mode, ModeTransition, JustificationRequiredError,
)

__all__ = ['ModeStateMachine']

logger = logging.getLogger("echonate.core.access.modes")


class ModeStateMachine:

    def __init__(self, initial: Mode = Mode.STANDARD):
        self._mode = Mode.parse(initial)

    @property
    def current(self) -> Mode:
        return self._mode

    def allows(self, required: Mode) -> bool:
        """True if the current mode is at or above ``required``."""
        return self._mode >= required

    def transition(self, target, justification: Optional[str]) -> ModeTransition:
        """Move to ``target``.

        Raises InvalidModeError for an unknown target and
        JustificationRequiredError for a missing or blank justification.
        """
        new_mode = Mode.parse(target)
        if not isinstance(justification, str) or not justification.strip():
            raise JustificationRequiredError(
                "Mode change requires a non-empty justification")

        transition = ModeTransition(
            from_mode=self._mode,
            to_mode=new_mode,
            justification=justification.strip(),
            timestamp=datetime.now().isoformat(),
        )
        self._mode = new_mode
        logger.info("Mode %s → %s (%s)", transition.from_mode.value,
                    new_mode.value, transition.justification)
        return transition

    def restore(self, value) -> None:
        """Set the mode from persisted state at startup. Not a transition."""
        self._mode = Mode.parse(value)
