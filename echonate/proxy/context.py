#!/usr/bin/env python3
"""
Control-Plane Context — All per-process state in one explicit object.

build_context() loads persisted state merged over defaults and wires the
components together. The context is passed to the dispatcher; there is no
module-level singleton, so tests can build as many isolated planes as
they like.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from echonate.core.access.modes import ModeStateMachine
from echonate.core.access.registry import CapabilityRegistry
from echonate.core.access.settings import merge_settings
from echonate.core.analysis.risk import RiskScorer, load_risk_weights
from echonate.core.audit.log import AuditLog
from echonate.core.config import UnifiedConfig
from echonate.core.constants import (
    KEY_AUDIT_LOG, KEY_CONFIG, KEY_CREDENTIALS, KEY_MODE, KEY_TERMS_ACCEPTED,
    PERSISTED_KEYS,
)
from echonate.core.crypto.cipher import CredentialCipher
from echonate.core.crypto.vault import CredentialVault
from echonate.core.network.providers import CaptchaProviderRegistry
from echonate.core.persistence.store import JsonFileStore, KeyValueStore
from echonate.core.types import InvalidModeError, RiskAssessment
from echonate.proxy.automation import AutomationBackend, LoggingAutomationBackend
from echonate.proxy.confirmation import ConfirmationBroker, ConfirmationSurface
from echonate.proxy.gate import ConfirmationGate

__all__ = ['ControlPlaneContext', 'build_context']

logger = logging.getLogger("echonate.proxy.context")


@dataclass
class ControlPlaneContext:
    config: UnifiedConfig
    store: KeyValueStore
    settings: Dict[str, Any]
    modes: ModeStateMachine
    registry: CapabilityRegistry
    gate: ConfirmationGate
    audit: AuditLog
    vault: CredentialVault
    scorer: RiskScorer
    providers: CaptchaProviderRegistry
    backend: AutomationBackend
    broker: Optional[ConfirmationBroker] = None
    terms_accepted: bool = False
    load_warnings: list = field(default_factory=list)

    def risk(self) -> RiskAssessment:
        return self.scorer.assess(self.settings)

    def apply_audit_settings(self) -> None:
        """Point the audit log at the live action_logging/audit_storage values."""
        self.audit.enabled = bool(self.settings['action_logging'])
        self.audit.persist = self.settings['audit_storage'] == 'local'

    # ---- Persistence: synchronous, one key per mutation ----

    def _persist(self, key: str, value: Any) -> bool:
        try:
            self.store.set(key, value)
            return True
        except (OSError, TypeError, ValueError) as e:
            logger.error("Failed to persist %s: %s", key, e)
            return False

    def persist_settings(self) -> bool:
        return self._persist(KEY_CONFIG, dict(self.settings))

    def persist_mode(self) -> bool:
        return self._persist(KEY_MODE, self.modes.current.value)

    def persist_credentials(self) -> bool:
        return self._persist(KEY_CREDENTIALS, self.vault.to_dict())

    def persist_terms(self) -> bool:
        return self._persist(KEY_TERMS_ACCEPTED, self.terms_accepted)


def build_context(config: UnifiedConfig = None, store: KeyValueStore = None,
                  backend: AutomationBackend = None,
                  surface: ConfirmationSurface = None,
                  cipher: CredentialCipher = None) -> ControlPlaneContext:
    """Load persisted state and assemble a control plane.

    Every collaborator can be injected; anything not given is built from
    ``config``. When no surface is given, a ConfirmationBroker is created
    and used as the surface.
    """
    config = config or UnifiedConfig()
    store = store if store is not None else JsonFileStore(config.state_file)
    persisted = store.get(PERSISTED_KEYS)
    warnings = []

    settings = merge_settings(persisted.get(KEY_CONFIG))

    modes = ModeStateMachine()
    if KEY_MODE in persisted:
        try:
            modes.restore(persisted[KEY_MODE])
        except InvalidModeError:
            warnings.append(f"invalid persisted mode {persisted[KEY_MODE]!r}")
            logger.warning("Persisted mode %r is invalid; starting in standard",
                           persisted[KEY_MODE])

    registry = CapabilityRegistry()
    for key, message in registry.load_overrides(config.capability_overrides):
        warnings.append(f"override {key}: {message}")
        logger.warning("Ignoring capability override %s: %s", key, message)

    weights, thresholds = load_risk_weights(config.risk_weights_file)
    scorer = RiskScorer(weights, thresholds)

    vault = CredentialVault(cipher or CredentialCipher.from_key_file(config.key_file))
    vault.load(persisted.get(KEY_CREDENTIALS))

    audit = AuditLog(store)
    if settings['audit_storage'] == 'local':
        if not audit.load(persisted.get(KEY_AUDIT_LOG) or []):
            warnings.append(f"audit chain broken at sequence {audit.tampered_at}")

    broker = None
    if surface is None:
        broker = ConfirmationBroker(config.confirmation_timeout_seconds)
        surface = broker
    elif isinstance(surface, ConfirmationBroker):
        broker = surface

    ctx = ControlPlaneContext(
        config=config,
        store=store,
        settings=settings,
        modes=modes,
        registry=registry,
        gate=ConfirmationGate(registry, modes, surface),
        audit=audit,
        vault=vault,
        scorer=scorer,
        providers=CaptchaProviderRegistry(config.captcha_api_keys),
        backend=backend or LoggingAutomationBackend(),
        broker=broker,
        terms_accepted=persisted.get(KEY_TERMS_ACCEPTED) is True,
        load_warnings=warnings,
    )
    ctx.apply_audit_settings()
    logger.info("Control plane ready: mode=%s risk=%s credentials=%d audit_events=%d",
                modes.current.value, ctx.risk().level.value,
                len(vault.sites()), len(audit))
    return ctx
