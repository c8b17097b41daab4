"""
Access Control — Who may do what, at which automation level.

Classes:
- CapabilityRegistry: Action type → minimum mode per automation level
- ModeStateMachine: Current privilege tier and justified transitions

Also exports the setting domains and their validation helpers.
"""

from echonate.core.access.settings import (
    SETTING_DOMAINS,
    DEFAULT_SETTINGS,
    validate_setting,
    merge_settings,
    is_known_setting,
)

from echonate.core.access.registry import (
    CapabilityEntry,
    CapabilityRegistry,
    DEFAULT_ENTRIES,
)

from echonate.core.access.modes import ModeStateMachine

__all__ = [
    # Settings
    'SETTING_DOMAINS',
    'DEFAULT_SETTINGS',
    'validate_setting',
    'merge_settings',
    'is_known_setting',

    # Registry
    'CapabilityEntry',
    'CapabilityRegistry',
    'DEFAULT_ENTRIES',

    # Modes
    'ModeStateMachine',
]
