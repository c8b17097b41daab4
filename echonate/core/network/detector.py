#!/usr/bin/env python3
"""
EchoNate Core Network — Detection Adapter
===========================================
Bridges the page-observation layer and the dispatcher:
- Classifies HTTP responses (rate limit, bot challenge and vendor)
- Classifies forms and CAPTCHA widgets from their markup/field names
- Wraps raw detection events into ActionRequests
- Redacts sensitive form fields for display

Nothing here performs an action. Wrapped requests still go through the
dispatcher and its gate like any other request.

Import from: echonate.core.network.detector
"""

from typing import Any, Dict, Iterable, Mapping, Optional, Sequence, Tuple, Union

from echonate.core.constants import (
    CHALLENGE_HEADER_INDICATORS, HTTP_FORBIDDEN, HTTP_TOO_MANY_REQUESTS,
    REDACTED, SENSITIVE_FORM_FIELDS,
)
from echonate.core.types import (
    ActionRequest, ActionType, DetectionEvent, DetectionKind, InvalidActionError,
)

__all__ = [
    'detect_challenge', 'identify_challenge_type', 'classify_response',
    'observe_response', 'identify_form_type', 'identify_captcha_type',
    'sanitize_for_display', 'wrap_detection_event',
]

Headers = Union[Mapping[str, str], Iterable[Tuple[str, str]]]

CAPTCHA_MARKERS = ('recaptcha', 'hcaptcha', 'funcaptcha')


def _header_names(headers: Headers) -> Sequence[str]:
    if headers is None:
        return []
    items = headers.keys() if isinstance(headers, Mapping) else (h[0] for h in headers)
    return [str(name).lower() for name in items]


def detect_challenge(headers: Headers) -> bool:
    """True if any header name contains a known bot-challenge indicator."""
    names = _header_names(headers)
    return any(indicator in name
               for name in names
               for indicator, _vendor in CHALLENGE_HEADER_INDICATORS)


def identify_challenge_type(headers: Headers) -> str:
    """Vendor of the first exactly-matching indicator header, else 'unknown'."""
    names = set(_header_names(headers))
    for indicator, vendor in CHALLENGE_HEADER_INDICATORS:
        if indicator in names:
            return vendor
    return 'unknown'


def classify_response(status_code: int, headers: Headers) -> Dict[str, Any]:
    """Summarize what an HTTP response tells us about bot defenses.

    A challenge needs both a 403 status and a vendor indicator header.
    """
    challenge = status_code == HTTP_FORBIDDEN and detect_challenge(headers)
    return {
        'rate_limited': status_code == HTTP_TOO_MANY_REQUESTS,
        'challenge': challenge,
        'challenge_type': identify_challenge_type(headers) if challenge else None,
    }


def observe_response(url: str, status_code: int,
                     headers: Headers) -> Optional[DetectionEvent]:
    """Turn a challenged response into a detection event, else None."""
    info = classify_response(status_code, headers)
    if not info['challenge']:
        return None
    return DetectionEvent(
        kind=DetectionKind.CHALLENGE_DETECTED,
        url=url,
        details={'challenge_type': info['challenge_type'], 'status': status_code},
    )


def identify_form_type(field_names: Iterable[str]) -> str:
    """login / address / payment / generic, from field names or ids."""
    fields = [str(f).lower() for f in field_names if f]

    def has(*needles):
        return any(n in f for f in fields for n in needles)

    if has('email', 'username') and has('password'):
        return 'login'
    if has('address') and has('city') and has('zip'):
        return 'address'
    if has('card', 'credit'):
        return 'payment'
    return 'generic'


def identify_captcha_type(markup: str) -> str:
    html = (markup or '').lower()
    for marker in CAPTCHA_MARKERS:
        if marker in html:
            return marker
    return 'unknown'


def sanitize_for_display(form_data: Mapping[str, Any]) -> Dict[str, Any]:
    """Copy of ``form_data`` with sensitive fields redacted."""
    return {
        name: (REDACTED if name in SENSITIVE_FORM_FIELDS else value)
        for name, value in (form_data or {}).items()
    }


_KIND_TO_ACTION = {
    DetectionKind.FORM_DETECTED: ActionType.SUBMIT_FORM,
    DetectionKind.CHALLENGE_DETECTED: ActionType.HANDLE_CHALLENGE,
    DetectionKind.CAPTCHA_DETECTED: ActionType.SOLVE_CAPTCHA,
}


def wrap_detection_event(event: Union[DetectionEvent, Mapping[str, Any]]) -> ActionRequest:
    """Convert a raw detection event into the ActionRequest it implies.

    Accepts a DetectionEvent or its JSON form ``{kind, url, details}``.
    """
    if isinstance(event, Mapping):
        try:
            event = DetectionEvent(
                kind=DetectionKind(event.get('kind')),
                url=str(event.get('url', '')),
                details=dict(event.get('details') or {}),
            )
        except (ValueError, TypeError) as e:
            raise InvalidActionError(f"Invalid detection event: {e}") from e

    action_type = _KIND_TO_ACTION[event.kind]
    details = dict(event.details)
    payload: Dict[str, Any] = {'url': event.url}

    if action_type == ActionType.SUBMIT_FORM:
        form_data = dict(details.get('form_data') or {})
        payload['form_data'] = form_data
        payload['form_type'] = details.get('form_type') or identify_form_type(form_data)
    elif action_type == ActionType.HANDLE_CHALLENGE:
        payload['challenge_type'] = details.get('challenge_type', 'unknown')
    else:
        payload['captcha_type'] = (details.get('captcha_type')
                                   or identify_captcha_type(details.get('markup', '')))
        if details.get('image') is not None:
            payload['image'] = details['image']
        if details.get('provider'):
            payload['provider'] = details['provider']

    return ActionRequest(type=action_type, payload=payload)
