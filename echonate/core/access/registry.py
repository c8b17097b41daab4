"""
EchoNate Core Access — Capability Registry
============================================
Static lookup table mapping each ActionType to:
- the minimum Mode required for each AutomationLevel
- the default AutomationLevel
- the live setting that selects the level (if any)

Mode requirements are immutable at runtime. Runtime overrides may change
an action's automation level, never the mode that level requires, so
raising an override can only make an action harder to reach.

Import from: echonate.core.access.registry
"""

from dataclasses import dataclass
from typing import Callable, Dict, List, Mapping, Optional, Tuple

from echonate.core.types import ActionType, AutomationLevel, Mode

__all__ = ['CapabilityEntry', 'CapabilityRegistry', 'DEFAULT_ENTRIES', 'stricter_level']

# Shorthand aliases
_A = ActionType
_L = AutomationLevel
_M = Mode


@dataclass(frozen=True)
class CapabilityEntry:
    """Registry row for one action type."""
    action_type: ActionType
    default_level: AutomationLevel
    min_modes: Mapping[AutomationLevel, Mode]
    level_setting: Optional[str] = None

    @property
    def is_fixed(self) -> bool:
        """True if the level is not selectable by settings or overrides."""
        return self.level_setting is None

    def required_mode(self, level: AutomationLevel) -> Mode:
        return self.min_modes[level]


# =============================================================================
# LEVEL SOURCES — live settings → automation level
# =============================================================================

_CHALLENGE_LEVELS = {
    'wait': _L.MANUAL,
    'assist': _L.ASSISTED,
    'bypass': _L.AUTOMATED,
}


def _challenge_level(settings: Mapping) -> AutomationLevel:
    return _CHALLENGE_LEVELS[settings['challenge_strategy']]


def _captcha_level(settings: Mapping) -> AutomationLevel:
    return AutomationLevel(settings['captcha_mode'])


def _confirmation_level(settings: Mapping) -> AutomationLevel:
    return _L.ASSISTED if settings['user_confirmation'] else _L.AUTOMATED


def _form_level(settings: Mapping) -> AutomationLevel:
    if not settings['form_auto_submit']:
        return _L.MANUAL
    return _confirmation_level(settings)


_LEVEL_SOURCES: Dict[str, Callable[[Mapping], AutomationLevel]] = {
    'challenge_strategy': _challenge_level,
    'captcha_mode': _captcha_level,
    'user_confirmation': _confirmation_level,
    'form_auto_submit': _form_level,
}


def _modes(manual: Mode, assisted: Mode, automated: Mode) -> Dict[AutomationLevel, Mode]:
    return {_L.MANUAL: manual, _L.ASSISTED: assisted, _L.AUTOMATED: automated}


# Higher = more human involvement
_INVOLVEMENT = {_L.AUTOMATED: 0, _L.ASSISTED: 1, _L.MANUAL: 2}


def stricter_level(a: AutomationLevel, b: AutomationLevel) -> AutomationLevel:
    """The level of the two that keeps the user more involved."""
    return a if _INVOLVEMENT[a] >= _INVOLVEMENT[b] else b


# =============================================================================
# THE DEFAULT REGISTRY
# =============================================================================

_ANY = _modes(_M.STANDARD, _M.STANDARD, _M.STANDARD)

DEFAULT_ENTRIES: Tuple[CapabilityEntry, ...] = (
    CapabilityEntry(_A.HANDLE_CHALLENGE, _L.MANUAL,
                    _modes(_M.STANDARD, _M.ADVANCED, _M.RESEARCH), 'challenge_strategy'),
    CapabilityEntry(_A.SOLVE_CAPTCHA, _L.MANUAL,
                    _modes(_M.STANDARD, _M.ADVANCED, _M.RESEARCH), 'captcha_mode'),
    CapabilityEntry(_A.SYNC_SESSION, _L.ASSISTED,
                    _modes(_M.STANDARD, _M.STANDARD, _M.ADVANCED), 'user_confirmation'),
    CapabilityEntry(_A.SUBMIT_FORM, _L.MANUAL,
                    _modes(_M.STANDARD, _M.STANDARD, _M.ADVANCED), 'form_auto_submit'),
    CapabilityEntry(_A.STORE_CREDENTIAL, _L.ASSISTED, _ANY, 'user_confirmation'),
    CapabilityEntry(_A.RETRIEVE_CREDENTIAL, _L.ASSISTED, _ANY, 'user_confirmation'),
    # Control actions: always automated, reachable in every mode
    CapabilityEntry(_A.EXPORT_AUDIT, _L.AUTOMATED, _ANY),
    CapabilityEntry(_A.CHANGE_MODE, _L.AUTOMATED, _ANY),
    CapabilityEntry(_A.UPDATE_CONFIG, _L.AUTOMATED, _ANY),
    CapabilityEntry(_A.ACCEPT_TERMS, _L.AUTOMATED, _ANY),
)


class CapabilityRegistry:
    """Action type → capability entry, with runtime level overrides.

    The configured level of an action is, in order:
    1. a runtime override set on the registry
    2. the level selected by the live settings
    3. the entry's default level

    A level requested in the payload can only add human involvement: the
    effective level is the stricter of requested and configured, and the
    required mode is the higher of the two levels' requirements. Fixed
    (control) actions ignore overrides and requests.
    """

    def __init__(self, entries=DEFAULT_ENTRIES):
        self._entries: Dict[ActionType, CapabilityEntry] = {
            e.action_type: e for e in entries
        }
        missing = set(ActionType) - set(self._entries)
        if missing:
            names = ', '.join(sorted(m.value for m in missing))
            raise ValueError(f"Capability registry missing entries for: {names}")
        self._overrides: Dict[ActionType, AutomationLevel] = {}

    def entry(self, action_type: ActionType) -> CapabilityEntry:
        return self._entries[action_type]

    def required_mode(self, action_type: ActionType,
                      level: AutomationLevel) -> Mode:
        return self._entries[action_type].required_mode(level)

    def effective_level(self, action_type: ActionType, settings: Mapping,
                        requested: Optional[AutomationLevel] = None) -> AutomationLevel:
        """Resolve the automation level for one request."""
        configured = self.configured_level(action_type, settings)
        if requested is None or self._entries[action_type].is_fixed:
            return configured
        return stricter_level(requested, configured)

    def request_mode(self, action_type: ActionType, settings: Mapping,
                     requested: Optional[AutomationLevel] = None) -> Mode:
        """Minimum mode for one request.

        A requested level never lowers the requirement of the configured
        one, and a configured level never lowers that of a requested one.
        """
        entry = self._entries[action_type]
        required = entry.required_mode(self.configured_level(action_type, settings))
        if requested is not None and not entry.is_fixed:
            required = max(required, entry.required_mode(requested))
        return required

    def configured_level(self, action_type: ActionType, settings: Mapping) -> AutomationLevel:
        entry = self._entries[action_type]
        if entry.is_fixed:
            return entry.default_level
        if action_type in self._overrides:
            return self._overrides[action_type]
        source = _LEVEL_SOURCES.get(entry.level_setting)
        if source is not None:
            try:
                return source(settings)
            except (KeyError, ValueError):
                pass
        return entry.default_level

    # ---- Overrides ----

    def set_override(self, action_type: ActionType,
                     level: AutomationLevel) -> Tuple[bool, str]:
        """Pin an action's automation level. Returns (success, message).

        The mode requirement for the pinned level still applies.
        """
        entry = self._entries[action_type]
        if entry.is_fixed:
            return False, f"{action_type.value} has a fixed automation level"
        self._overrides[action_type] = level
        required = entry.required_mode(level)
        return True, (
            f"Override set: {action_type.value} → {level.value} "
            f"(requires {required.value} mode)")

    def get_all_overrides(self) -> Dict[str, str]:
        return {a.value: lvl.value for a, lvl in self._overrides.items()}

    def load_overrides(self, overrides: Mapping[str, str]) -> List[Tuple[str, str]]:
        """Load overrides from a {action: level} mapping.

        Returns a list of (key, error_message) for rejected entries.
        """
        errors = []
        for key, value in (overrides or {}).items():
            try:
                action_type = ActionType(key)
            except ValueError:
                errors.append((key, f"Unknown action type: {key}"))
                continue
            try:
                level = AutomationLevel(value)
            except ValueError:
                errors.append((key, f"Unknown level: {value}"))
                continue
            ok, msg = self.set_override(action_type, level)
            if not ok:
                errors.append((key, msg))
        return errors

    def describe(self, settings: Mapping) -> Dict[str, Dict]:
        """Serializable view of every entry and its live level."""
        result = {}
        for action_type, entry in self._entries.items():
            level = self.effective_level(action_type, settings)
            result[action_type.value] = {
                'level': level.value,
                'required_mode': entry.required_mode(level).value,
                'level_setting': entry.level_setting,
                'overridden': action_type in self._overrides,
                'min_modes': {lvl.value: m.value for lvl, m in entry.min_modes.items()},
            }
        return result
