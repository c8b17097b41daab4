#!/usr/bin/env python3
"""
EchoNate Core Audit — Audit Log
=================================
Append-only, tamper-evident record of every gate decision and state
transition:
- Chain hashing: each event hashes its predecessor's hash together with
  its own canonical JSON, so editing, dropping or reordering a persisted
  event breaks verification from that point on
- Persistence of the full sequence after every append (audit_storage=local)
- Documented no-op when action logging is disabled

There is no API to remove or reorder individual events. The
only way to shrink the log is clear(confirmed=True), which wipes all of it.

Import from: echonate.core.audit.log
"""

import hashlib
import json
import logging
import secrets
import threading
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from echonate.core.constants import (
    EVENT_ID_BYTES, GENESIS_HASH, KEY_AUDIT_LOG,
)
from echonate.core.version import AUDIT_EXPORT_FORMAT
from echonate.core.types import AuditEvent

__all__ = ['AuditLog']

logger = logging.getLogger("echonate.core.audit.log")


def _jsonable(details: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Normalize details to plain JSON types so hashes survive a reload."""
    return json.loads(json.dumps(details or {}, default=str, sort_keys=True))


def _event_body(event: Dict[str, Any]) -> str:
    body = {k: v for k, v in event.items() if k != 'chain_hash'}
    return json.dumps(body, sort_keys=True)


def _chain_hash(previous_hash: str, body: str) -> str:
    return hashlib.sha256(f"{previous_hash}:{body}".encode()).hexdigest()


class AuditLog:
    """Chain-hashed append-only event sequence."""

    def __init__(self, store=None):
        self._store = store
        self._lock = threading.Lock()
        self._events: List[AuditEvent] = []
        self._previous_hash = GENESIS_HASH
        self._sequence = 0

        # Mirrors the live settings: action_logging and audit_storage
        self.enabled = True
        self.persist = store is not None

        # Sequence number of the first event that failed verification on load
        self.tampered_at: Optional[int] = None

    # ---- Loading ----

    def load(self, raw_events: Iterable[Dict[str, Any]]) -> bool:
        """Replace the in-memory sequence with persisted events.

        The chain is verified. A broken chain is kept as-is (it is evidence)
        but flagged in ``tampered_at``. Returns True if the chain verified.
        """
        events = []
        for raw in raw_events or []:
            try:
                events.append(AuditEvent.from_dict(raw))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping malformed persisted audit event: %s", e)
                self.tampered_at = self.tampered_at or len(events) + 1
        with self._lock:
            self._events = events
            self._sequence = events[-1].sequence if events else 0
            self._previous_hash = events[-1].chain_hash if events else GENESIS_HASH
        ok, bad = self.verify_chain()
        if not ok:
            self.tampered_at = bad
            logger.warning("Audit chain verification failed at sequence %s", bad)
        elif events:
            logger.info("Loaded %d audit events (chain verified)", len(events))
        return ok and self.tampered_at is None

    # ---- Append ----

    def record(self, action: str, outcome: str, details: Dict[str, Any] = None,
               mode: str = "", risk: str = "", force: bool = False) -> Optional[AuditEvent]:
        """Append one event and persist the sequence.

        No-op returning None while logging is disabled, unless ``force``.
        Never raises: a failed persistence write is logged and the in-memory
        event is kept.
        """
        if not self.enabled and not force:
            logger.debug("Action logging disabled; dropping %s/%s", action, outcome)
            return None

        with self._lock:
            self._sequence += 1
            entry = {
                'id': f"evt_{secrets.token_hex(EVENT_ID_BYTES)}",
                'timestamp': datetime.now().isoformat(),
                'action': action,
                'outcome': outcome,
                'details': _jsonable(details),
                'mode': mode,
                'risk': risk,
                'sequence': self._sequence,
                'previous_hash': self._previous_hash,
            }
            entry['chain_hash'] = _chain_hash(self._previous_hash, _event_body(entry))
            event = AuditEvent.from_dict(entry)
            self._events.append(event)
            self._previous_hash = event.chain_hash
            snapshot = [e.to_dict() for e in self._events] if self.persist else None

        if snapshot is not None:
            self._write(snapshot)
        return event

    def _write(self, serialized: List[Dict[str, Any]]) -> None:
        if self._store is None:
            return
        try:
            self._store.set(KEY_AUDIT_LOG, serialized)
        except (OSError, TypeError, ValueError) as e:
            logger.error("Cannot persist audit log: %s", e)

    # ---- Read ----

    @property
    def events(self) -> Tuple[AuditEvent, ...]:
        with self._lock:
            return tuple(self._events)

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)

    def export(self) -> Dict[str, Any]:
        """Full sequence with a format marker and export timestamp."""
        ok, bad = self.verify_chain()
        with self._lock:
            events = [e.to_dict() for e in self._events]
        return {
            'format': AUDIT_EXPORT_FORMAT,
            'exported_at': datetime.now().isoformat(),
            'event_count': len(events),
            'integrity': {'verified': ok, 'first_broken_sequence': bad},
            'events': events,
        }

    def verify_chain(self) -> Tuple[bool, Optional[int]]:
        """Recompute every hash. Returns (ok, first_bad_sequence)."""
        with self._lock:
            events = list(self._events)
        previous = GENESIS_HASH
        for event in events:
            data = event.to_dict()
            if data['previous_hash'] != previous:
                return False, event.sequence
            if _chain_hash(previous, _event_body(data)) != event.chain_hash:
                return False, event.sequence
            previous = event.chain_hash
        return True, None

    # ---- Clear ----

    def clear(self, confirmed: bool) -> bool:
        """Wipe the entire sequence and its persisted copy.

        Only ``confirmed is True`` clears; anything else is a no-op that
        leaves the log unchanged. Returns True if the log was cleared.
        """
        if confirmed is not True:
            logger.info("Audit clear requested without confirmation; ignoring")
            return False
        with self._lock:
            count = len(self._events)
            self._events = []
            self._previous_hash = GENESIS_HASH
            self._sequence = 0
            self.tampered_at = None
        self._write([])
        logger.warning("Audit log cleared (%d events removed)", count)
        return True
