"""
EchoNate Core Access — Setting Domains
========================================
The closed set of configuration settings and the closed domain of values
each one accepts. The configuration snapshot is a plain dict keyed by these
names; this module is the only place that knows which keys and values are
legal.

Import from: echonate.core.access.settings
"""

import logging
from typing import Any, Dict, Mapping, Tuple

from echonate.core.types import UnknownSettingError, InvalidSettingValueError

__all__ = [
    'SETTING_DOMAINS', 'DEFAULT_SETTINGS',
    'validate_setting', 'merge_settings', 'is_known_setting',
]

logger = logging.getLogger("echonate.core.access.settings")

_BOOL = (True, False)

# Setting name → allowed values. First value is NOT implied to be the default;
# see DEFAULT_SETTINGS.
SETTING_DOMAINS: Dict[str, Tuple[Any, ...]] = {
    'user_confirmation':    _BOOL,
    'action_logging':       _BOOL,
    'rate_limit_strategy':  ('respectful', 'aggressive', 'unrestricted'),
    'captcha_mode':         ('manual', 'assisted', 'automated'),
    'form_auto_submit':     _BOOL,
    'session_verification': _BOOL,
    'fingerprint_method':   ('normalization', 'randomization', 'spoofing'),
    'proxy_enabled':        _BOOL,
    'challenge_strategy':   ('wait', 'assist', 'bypass'),
    'audit_storage':        ('local', 'memory', 'none'),
}

DEFAULT_SETTINGS: Dict[str, Any] = {
    'user_confirmation': True,
    'action_logging': True,
    'rate_limit_strategy': 'respectful',
    'captcha_mode': 'manual',
    'form_auto_submit': False,
    'session_verification': True,
    'fingerprint_method': 'normalization',
    'proxy_enabled': False,
    'challenge_strategy': 'wait',
    'audit_storage': 'local',
}


def is_known_setting(key: str) -> bool:
    return key in SETTING_DOMAINS


def validate_setting(key: str, value: Any) -> Any:
    """Return ``value`` if it is legal for ``key``, else raise.

    Booleans must be real booleans: ``1`` and ``"true"`` are rejected so a
    sloppy client cannot flip a safety switch by accident.
    """
    if key not in SETTING_DOMAINS:
        raise UnknownSettingError(f"Unknown setting: {key!r}")
    domain = SETTING_DOMAINS[key]
    if domain is _BOOL:
        if isinstance(value, bool):
            return value
    elif isinstance(value, str) and value in domain:
        return value
    raise InvalidSettingValueError(
        f"Invalid value {value!r} for {key} (allowed: {', '.join(map(str, domain))})")


def merge_settings(persisted: Mapping[str, Any] = None) -> Dict[str, Any]:
    """Merge persisted settings over the defaults.

    Unknown keys are ignored and out-of-domain values fall back to the
    default, so older and newer state files both load.
    """
    merged = dict(DEFAULT_SETTINGS)
    if not persisted:
        return merged
    for key, value in persisted.items():
        if key not in SETTING_DOMAINS:
            logger.debug("Ignoring unknown persisted setting %s", key)
            continue
        try:
            merged[key] = validate_setting(key, value)
        except InvalidSettingValueError:
            logger.warning("Persisted value for %s is invalid; using default", key)
    return merged
