"""
EchoNate Core — Policy primitives with no knowledge of transport.

Submodules:
- version     : Version constants (single source of truth)
- types       : Shared enums, dataclasses, exceptions
- config      : UnifiedConfig and the config.json overlay
- constants   : Sizes, timeouts, persisted keys, fixed tables
- access/     : Setting domains, capability registry, mode state machine
- analysis/   : Risk scoring
- audit/      : Chain-hashed audit log
- crypto/     : Credential cipher and vault
- network/    : Detection adapter, CAPTCHA provider registry
- persistence/: Key-value stores

Quick imports:
    from echonate.core import Mode, ActionType, ControlPlaneError
    from echonate.core.version import __version__
"""

from echonate.core.version import __version__, STATE_SCHEMA_VERSION, AUDIT_EXPORT_FORMAT

from echonate.core.types import (
    # Exceptions
    ControlPlaneError,
    InvalidModeError,
    JustificationRequiredError,
    InsufficientPrivilegeError,
    UserDeclinedError,
    MissingConsentError,
    OwnershipMismatchError,
    UnknownSettingError,
    InvalidSettingValueError,
    InvalidActionError,
    CredentialNotFoundError,
    ProviderNotConfiguredError,
    EffectTimeoutError,
    AuditDisabledError,
    TermsNotAcceptedError,
    AutomationError,
    # Enums
    Mode,
    AutomationLevel,
    ActionType,
    Outcome,
    GateVerdict,
    RiskLevel,
    ConfirmationChoice,
    DetectionKind,
    # Dataclasses
    ActionRequest,
    ActionResponse,
    AuditEvent,
    CredentialRecord,
    SessionTransferRecord,
    ModeTransition,
    ConfirmationResult,
    GateDecision,
    RiskAssessment,
    DetectionEvent,
)

__all__ = [
    '__version__', 'STATE_SCHEMA_VERSION', 'AUDIT_EXPORT_FORMAT',
    'ControlPlaneError', 'InvalidModeError', 'JustificationRequiredError',
    'InsufficientPrivilegeError', 'UserDeclinedError', 'MissingConsentError',
    'OwnershipMismatchError', 'UnknownSettingError', 'InvalidSettingValueError',
    'InvalidActionError', 'CredentialNotFoundError', 'ProviderNotConfiguredError',
    'EffectTimeoutError', 'AuditDisabledError', 'TermsNotAcceptedError',
    'AutomationError',
    'Mode', 'AutomationLevel', 'ActionType', 'Outcome', 'GateVerdict',
    'RiskLevel', 'ConfirmationChoice', 'DetectionKind',
    'ActionRequest', 'ActionResponse', 'AuditEvent', 'CredentialRecord',
    'SessionTransferRecord', 'ModeTransition', 'ConfirmationResult',
    'GateDecision', 'RiskAssessment', 'DetectionEvent',
]
