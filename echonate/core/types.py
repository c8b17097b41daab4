"""
EchoNate Core Types — Shared enums, dataclasses, and exceptions.

This module centralizes all type definitions used across the EchoNate
codebase. Both layers (core, proxy) import types from here.
"""

from __future__ import annotations

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, List, Optional


# =============================================================================
# EXCEPTIONS
# =============================================================================

class ControlPlaneError(Exception):
    """Base exception for all EchoNate control-plane failures.

    Every failure is local and recoverable: the dispatcher turns it into a
    structured response plus an audit event. ``kind`` is the stable,
    caller-visible name of the failure.
    """

    def __init__(self, reason: str = ""):
        super().__init__(reason)
        self.reason = reason or self.__class__.__doc__.strip().splitlines()[0]

    @property
    def kind(self) -> str:
        return self.__class__.__name__


class InvalidModeError(ControlPlaneError):
    """Unrecognized mode value."""


class JustificationRequiredError(ControlPlaneError):
    """Mode transition requested without a justification."""


class InsufficientPrivilegeError(ControlPlaneError):
    """Current mode is too low for the requested automation level."""


class UserDeclinedError(ControlPlaneError):
    """The user declined or cancelled the confirmation."""


class MissingConsentError(ControlPlaneError):
    """Credential operation without the required consent flag."""


class OwnershipMismatchError(ControlPlaneError):
    """Session sync between identifiers with different owners."""


class UnknownSettingError(ControlPlaneError):
    """Configuration update with an unrecognized key."""


class InvalidSettingValueError(ControlPlaneError):
    """Configuration value outside the setting's domain."""


class InvalidActionError(ControlPlaneError):
    """Unknown action type or malformed request."""


class CredentialNotFoundError(ControlPlaneError):
    """No credentials stored for the requested site."""


class ProviderNotConfiguredError(ControlPlaneError):
    """CAPTCHA provider unknown or missing an API key."""


class EffectTimeoutError(ControlPlaneError):
    """External effect did not finish within its timeout."""


class AuditDisabledError(ControlPlaneError):
    """Audit storage is disabled."""


class TermsNotAcceptedError(ControlPlaneError):
    """Terms must be accepted."""


class AutomationError(ControlPlaneError):
    """The automation backend failed while performing an effect."""


# =============================================================================
# ENUMS — Privilege and automation
# =============================================================================

class Mode(Enum):
    """Privilege tier. Totally ordered: STANDARD < ADVANCED < RESEARCH.

    Comparisons use the explicit rank, never string equality.
    """
    STANDARD = "standard"
    ADVANCED = "advanced"
    RESEARCH = "research"

    @property
    def rank(self) -> int:
        return _MODE_RANK[self]

    def __lt__(self, other):
        if not isinstance(other, Mode):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other):
        if not isinstance(other, Mode):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other):
        if not isinstance(other, Mode):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other):
        if not isinstance(other, Mode):
            return NotImplemented
        return self.rank >= other.rank

    @classmethod
    def parse(cls, value) -> 'Mode':
        """Parse a mode from a string (case-insensitive) or Mode."""
        if isinstance(value, Mode):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        raise InvalidModeError(f"Invalid mode: {value!r}")


_MODE_RANK = {Mode.STANDARD: 0, Mode.ADVANCED: 1, Mode.RESEARCH: 2}


class AutomationLevel(Enum):
    """How much human-in-the-loop interaction an action requires."""
    MANUAL = "manual"         # Notify only, the system never performs it
    ASSISTED = "assisted"     # Performed after interactive confirmation
    AUTOMATED = "automated"   # Performed directly

    @classmethod
    def parse(cls, value) -> 'AutomationLevel':
        if isinstance(value, AutomationLevel):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise InvalidActionError(f"Invalid automation level: {value!r}")


class ActionType(Enum):
    """Closed set of sensitive action types the dispatcher accepts."""
    HANDLE_CHALLENGE = "handle-challenge"
    SOLVE_CAPTCHA = "solve-captcha"
    SYNC_SESSION = "sync-session"
    SUBMIT_FORM = "submit-form"
    STORE_CREDENTIAL = "store-credential"
    RETRIEVE_CREDENTIAL = "retrieve-credential"
    EXPORT_AUDIT = "export-audit"
    CHANGE_MODE = "change-mode"
    UPDATE_CONFIG = "update-config"
    ACCEPT_TERMS = "accept-terms"

    @classmethod
    def parse(cls, value) -> 'ActionType':
        if isinstance(value, ActionType):
            return value
        if isinstance(value, str):
            normalized = value.strip().lower().replace('_', '-')
            try:
                return cls(normalized)
            except ValueError:
                pass
        raise InvalidActionError(f"Unknown action type: {value!r}")


class Outcome(Enum):
    """Terminal outcome of a dispatched request. Exactly one per request."""
    PERFORMED = "performed"
    DEFERRED = "deferred"
    DENIED = "denied"
    CANCELLED = "cancelled"
    ERRORED = "errored"


class GateVerdict(Enum):
    """What the gate decided for one evaluation."""
    DENY = "deny"           # Mode below requirement
    DEFER = "defer"         # Manual: notify only
    CONFIRM = "confirm"     # Assisted: must ask the user
    PROCEED = "proceed"     # Automated, or assisted and confirmed
    CANCEL = "cancel"       # Assisted and the user declined/cancelled


class RiskLevel(Enum):
    """Ordinal risk summary of the configuration snapshot."""
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class ConfirmationChoice(Enum):
    """Result of presenting a confirmation to the user."""
    CONFIRM = "confirm"
    DECLINE = "decline"
    CANCELLED = "cancelled"
    TIMEOUT = "timeout"


class DetectionKind(Enum):
    """Raw detection events emitted by the page-observation layer."""
    FORM_DETECTED = "form-detected"
    CHALLENGE_DETECTED = "challenge-detected"
    CAPTCHA_DETECTED = "captcha-detected"


# =============================================================================
# DATACLASSES — Requests and responses
# =============================================================================

@dataclass(frozen=True)
class ActionRequest:
    """A tagged action request: {type, payload}."""
    type: ActionType
    payload: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> 'ActionRequest':
        """Build a request from its JSON form.

        Accepts ``{"type": ..., "payload": {...}}``. Raises
        InvalidActionError for anything else.
        """
        if not isinstance(d, dict):
            raise InvalidActionError("Action request must be an object")
        action_type = ActionType.parse(d.get('type'))
        payload = d.get('payload', {})
        if payload is None:
            payload = {}
        if not isinstance(payload, dict):
            raise InvalidActionError("Action payload must be an object")
        return cls(type=action_type, payload=dict(payload))

    def to_dict(self) -> dict:
        return {'type': self.type.value, 'payload': dict(self.payload)}


@dataclass
class ActionResponse:
    """Structured response: {success, data | error}."""
    success: bool
    outcome: Outcome
    data: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None
    error_kind: Optional[str] = None
    audit_id: Optional[str] = None

    def to_dict(self) -> dict:
        result = {
            'success': self.success,
            'outcome': self.outcome.value,
            'audit_id': self.audit_id,
        }
        if self.success:
            result['data'] = self.data
        else:
            result['error'] = self.error
            result['error_kind'] = self.error_kind
            if self.data:
                result['data'] = self.data
        return result


# =============================================================================
# DATACLASSES — Audit
# =============================================================================

@dataclass(frozen=True)
class AuditEvent:
    """Immutable, chain-hashed record of one gate decision or transition."""
    id: str
    timestamp: str
    action: str
    outcome: str
    details: Dict[str, Any]
    mode: str
    risk: str
    sequence: int
    previous_hash: str
    chain_hash: str

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: dict) -> 'AuditEvent':
        return cls(
            id=d['id'],
            timestamp=d['timestamp'],
            action=d['action'],
            outcome=d.get('outcome', ''),
            details=dict(d.get('details') or {}),
            mode=d.get('mode', ''),
            risk=d.get('risk', ''),
            sequence=int(d.get('sequence', 0)),
            previous_hash=d.get('previous_hash', ''),
            chain_hash=d.get('chain_hash', ''),
        )


# =============================================================================
# DATACLASSES — Domain records
# =============================================================================

@dataclass
class CredentialRecord:
    """An encrypted credential. Plaintext is never stored here."""
    site: str
    encrypted: str
    stored_at: str
    encryption: str = "AES-256-GCM"

    def to_dict(self) -> dict:
        return {
            'site': self.site,
            'encrypted': self.encrypted,
            'stored_at': self.stored_at,
            'encryption': self.encryption,
        }

    @classmethod
    def from_dict(cls, d: dict) -> 'CredentialRecord':
        return cls(
            site=d['site'],
            encrypted=d['encrypted'],
            stored_at=d.get('stored_at', ''),
            encryption=d.get('encryption', 'AES-256-GCM'),
        )


@dataclass
class SessionTransferRecord:
    """Result of a session sync between two identifiers."""
    source: str
    target: str
    ownership_verified: bool
    cookies_transferred: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class ModeTransition:
    """A completed mode change."""
    from_mode: Mode
    to_mode: Mode
    justification: str
    timestamp: str

    def to_dict(self) -> dict:
        return {
            'from': self.from_mode.value,
            'to': self.to_mode.value,
            'justification': self.justification,
            'timestamp': self.timestamp,
        }


@dataclass(frozen=True)
class ConfirmationResult:
    """What the user chose when presented with a confirmation."""
    choice: ConfirmationChoice
    detail: str = ""

    @property
    def confirmed(self) -> bool:
        return self.choice == ConfirmationChoice.CONFIRM


@dataclass(frozen=True)
class GateDecision:
    """Outcome of one gate evaluation."""
    verdict: GateVerdict
    action_type: ActionType
    level: AutomationLevel
    mode: Mode
    required_mode: Mode
    reason: str = ""

    def to_dict(self) -> dict:
        return {
            'verdict': self.verdict.value,
            'level': self.level.value,
            'mode': self.mode.value,
            'required_mode': self.required_mode.value,
            'reason': self.reason,
        }


@dataclass(frozen=True)
class RiskAssessment:
    """Risk score derived from a configuration snapshot."""
    score: int
    level: RiskLevel
    factors: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            'score': self.score,
            'level': self.level.value,
            'factors': dict(self.factors),
        }


@dataclass(frozen=True)
class DetectionEvent:
    """A raw detection event from the page-observation layer."""
    kind: DetectionKind
    url: str = ""
    details: Dict[str, Any] = field(default_factory=dict)


# =============================================================================
# EXPORTS
# =============================================================================

__all__ = [
    # Exceptions
    'ControlPlaneError',
    'InvalidModeError',
    'JustificationRequiredError',
    'InsufficientPrivilegeError',
    'UserDeclinedError',
    'MissingConsentError',
    'OwnershipMismatchError',
    'UnknownSettingError',
    'InvalidSettingValueError',
    'InvalidActionError',
    'CredentialNotFoundError',
    'ProviderNotConfiguredError',
    'EffectTimeoutError',
    'AuditDisabledError',
    'TermsNotAcceptedError',
    'AutomationError',

    # Enums
    'Mode',
    'AutomationLevel',
    'ActionType',
    'Outcome',
    'GateVerdict',
    'RiskLevel',
    'ConfirmationChoice',
    'DetectionKind',

    # Dataclasses
    'ActionRequest',
    'ActionResponse',
    'AuditEvent',
    'CredentialRecord',
    'SessionTransferRecord',
    'ModeTransition',
    'ConfirmationResult',
    'GateDecision',
    'RiskAssessment',
    'DetectionEvent',
]
