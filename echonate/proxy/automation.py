#!/usr/bin/env python3
"""
Automation Backend — The effect layer behind the gate.

The control plane decides whether an action may happen; a backend makes
it happen (copies cookies, fills DOM fields, talks to a CAPTCHA service).
Backends are only ever called by dispatcher handlers after the gate said
PROCEED, or for notify-only calls on DEFER.

LoggingAutomationBackend is the default: it performs no real effect, logs
each call and keeps a record of it so the control plane runs end to end
and tests can assert exactly what was (and was not) performed.
"""

import logging
import threading
from typing import Any, Dict, List, Mapping, Optional

__all__ = ['AutomationBackend', 'LoggingAutomationBackend']

logger = logging.getLogger("echonate.proxy.automation")


class AutomationBackend:
    """Interface for automation primitives."""

    def notify_user(self, title: str, message: str, context: Dict[str, Any] = None) -> None:
        raise NotImplementedError

    def assist_challenge(self, url: str, challenge_type: str) -> Dict[str, Any]:
        """Inject human-like interaction patterns while the user solves."""
        raise NotImplementedError

    def bypass_challenge(self, url: str, challenge_type: str) -> Dict[str, Any]:
        raise NotImplementedError

    def solve_captcha(self, captcha_type: str, provider: str, image: Optional[str],
                      api_key: str) -> str:
        """Return the solution token."""
        raise NotImplementedError

    def session_owner(self, identifier: str) -> Optional[str]:
        """Owner of a session identifier (tab/window/profile), None if unknown."""
        raise NotImplementedError

    def transfer_session(self, source: str, target: str) -> int:
        """Copy session state from source to target. Returns cookies copied."""
        raise NotImplementedError

    def fill_form(self, url: str, form_data: Mapping[str, Any]) -> None:
        raise NotImplementedError

    def submit_form(self, url: str, form_data: Mapping[str, Any]) -> None:
        raise NotImplementedError


class LoggingAutomationBackend(AutomationBackend):
    """Records calls instead of performing them.

    ``owners`` maps session identifiers to their owner; ``cookies`` maps
    identifiers to the cookie names they hold. Both drive the session
    methods so ownership checks and transfer counts are realistic.
    """

    def __init__(self, owners: Mapping[str, str] = None,
                 cookies: Mapping[str, List[str]] = None):
        self.owners = dict(owners or {})
        self.cookies = {k: list(v) for k, v in (cookies or {}).items()}
        self.calls: List[tuple] = []
        self._lock = threading.Lock()

    def _record(self, name: str, *args):
        with self._lock:
            self.calls.append((name,) + args)
        logger.info("automation: %s%r", name, args)

    def called(self, name: str) -> List[tuple]:
        with self._lock:
            return [c for c in self.calls if c[0] == name]

    def notify_user(self, title, message, context=None):
        self._record('notify_user', title, message)

    def assist_challenge(self, url, challenge_type):
        self._record('assist_challenge', url, challenge_type)
        return {'action': 'inject_patterns'}

    def bypass_challenge(self, url, challenge_type):
        self._record('bypass_challenge', url, challenge_type)
        return {'action': 'bypass_attempted'}

    def solve_captcha(self, captcha_type, provider, image, api_key):
        self._record('solve_captcha', captcha_type, provider)
        return 'CAPTCHA_SOLUTION_TOKEN'

    def session_owner(self, identifier):
        return self.owners.get(identifier)

    def transfer_session(self, source, target):
        with self._lock:
            copied = list(self.cookies.get(source, []))
            self.cookies.setdefault(target, [])
            self.cookies[target].extend(c for c in copied if c not in self.cookies[target])
        self._record('transfer_session', source, target)
        return len(copied)

    def fill_form(self, url, form_data):
        self._record('fill_form', url, sorted(form_data))

    def submit_form(self, url, form_data):
        self._record('submit_form', url, sorted(form_data))
