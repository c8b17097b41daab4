#!/usr/bin/env python3
"""
Confirmation Broker — Pending-confirmation table behind the gate.

Implements the ConfirmationSurface interface for the HTTP control surface:
present() registers a pending confirmation and blocks the calling thread
until a user confirms, declines or cancels it through the API, or until
the timeout elapses. Every exit path removes the entry, so an abandoned
confirmation can never be answered later.
"""

import hmac
import logging
import secrets
import threading
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from echonate.core.constants import CONFIRMATION_ID_BYTES
from echonate.core.types import ConfirmationChoice, ConfirmationResult

__all__ = ['ConfirmationSurface', 'ConfirmationBroker', 'DEFAULT_OPTIONS']

logger = logging.getLogger("echonate.proxy.confirmation")

DEFAULT_OPTIONS = ('confirm', 'decline')


class ConfirmationSurface:
    """Interface: ask the user, block until answered or timed out."""

    def present(self, message: str, options: Sequence[str] = DEFAULT_OPTIONS,
                timeout: float = None, context: Dict[str, Any] = None) -> ConfirmationResult:
        raise NotImplementedError


class ConfirmationBroker(ConfirmationSurface):
    """Thread-safe table of confirmations awaiting a user decision."""

    MAX_PENDING = 20

    def __init__(self, default_timeout: float = 60):
        self.default_timeout = default_timeout
        self.pending: Dict[str, Dict[str, Any]] = {}
        self.lock = threading.Lock()

    def present(self, message, options=DEFAULT_OPTIONS, timeout=None, context=None):
        timeout = self.default_timeout if timeout is None else timeout
        waiter = threading.Event()
        confirmation_id = secrets.token_hex(CONFIRMATION_ID_BYTES)

        with self.lock:
            if len(self.pending) >= self.MAX_PENDING:
                logger.warning("Too many pending confirmations; cancelling new request")
                return ConfirmationResult(ConfirmationChoice.CANCELLED,
                                          "too many pending confirmations")
            self.pending[confirmation_id] = {
                'id': confirmation_id,
                'message': message,
                'options': list(options),
                'context': dict(context or {}),
                'created': datetime.now().isoformat(),
                'timeout': timeout,
                'event': waiter,
                'result': None,
            }
        logger.info("Confirmation %s pending: %s", confirmation_id, message)

        answered = waiter.wait(timeout)

        with self.lock:
            entry = self.pending.pop(confirmation_id, None)
        result = entry['result'] if entry else None
        if not answered or result is None:
            logger.info("Confirmation %s timed out after %ss", confirmation_id, timeout)
            return ConfirmationResult(ConfirmationChoice.TIMEOUT,
                                      f"no answer within {timeout}s")
        return result

    def _find(self, confirmation_id: str) -> Optional[str]:
        """Timing-safe lookup. Caller holds the lock."""
        for pending_id in self.pending:
            if hmac.compare_digest(pending_id, str(confirmation_id)):
                return pending_id
        return None

    def resolve(self, confirmation_id: str, choice: ConfirmationChoice,
                detail: str = "") -> bool:
        """Answer a pending confirmation. Returns False if unknown or already answered."""
        with self.lock:
            found = self._find(confirmation_id)
            if found is None:
                return False
            entry = self.pending[found]
            if entry['result'] is not None:
                return False
            entry['result'] = ConfirmationResult(choice, detail)
            entry['event'].set()
        logger.info("Confirmation %s resolved: %s", found, choice.value)
        return True

    def confirm(self, confirmation_id: str) -> bool:
        return self.resolve(confirmation_id, ConfirmationChoice.CONFIRM)

    def decline(self, confirmation_id: str) -> bool:
        return self.resolve(confirmation_id, ConfirmationChoice.DECLINE)

    def cancel(self, confirmation_id: str) -> bool:
        return self.resolve(confirmation_id, ConfirmationChoice.CANCELLED, "cancelled")

    def cancel_all(self) -> int:
        """Cancel every open confirmation (shutdown). Returns how many."""
        with self.lock:
            ids = [cid for cid, e in self.pending.items() if e['result'] is None]
        return sum(1 for cid in ids if self.cancel(cid))

    def get_all_pending(self) -> List[Dict[str, Any]]:
        """Serializable view of open confirmations, oldest first."""
        with self.lock:
            entries = [e for e in self.pending.values() if e['result'] is None]
            return [
                {k: v for k, v in e.items() if k not in ('event', 'result')}
                for e in sorted(entries, key=lambda e: e['created'])
            ]
