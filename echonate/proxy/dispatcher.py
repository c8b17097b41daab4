#!/usr/bin/env python3
"""
Action Dispatcher — Single entry point for sensitive actions.

For each request:
    parse → handler preconditions → gate (may block on confirmation)
          → effect through the automation backend → one audit event
          → persistence → ActionResponse

Every request yields exactly one terminal audit event whose outcome is
one of performed / deferred / denied / cancelled / errored. Handlers raise
ControlPlaneError subclasses; dispatch() converts them to failure
responses, so no request failure escapes as an exception.

All dispatches serialize on one re-entrant lock. It is released only
while waiting for a user confirmation, and the gate re-checks the live
mode and settings once it is reacquired.

Effects run on a small worker pool with a bounded wait. A timed-out call
cannot be interrupted, so its worker is written off; when every worker
is written off the pool is replaced.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, TimeoutError as FutureTimeout
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Union

from echonate.core.access.settings import validate_setting
from echonate.core.constants import MAX_EFFECT_WORKERS
from echonate.core.network.detector import (
    identify_form_type, sanitize_for_display, wrap_detection_event,
)
from echonate.core.network.providers import DEFAULT_PROVIDER
from echonate.core.types import (
    ActionRequest, ActionResponse, ActionType, AuditDisabledError,
    AutomationError, AutomationLevel, ControlPlaneError,
    CredentialNotFoundError, EffectTimeoutError, GateDecision, GateVerdict,
    InsufficientPrivilegeError, InvalidActionError, JustificationRequiredError,
    MissingConsentError, Mode, Outcome, OwnershipMismatchError,
    SessionTransferRecord, TermsNotAcceptedError, UnknownSettingError,
    UserDeclinedError,
)
from echonate.core.version import __version__
from echonate.proxy.context import ControlPlaneContext

__all__ = ['ActionDispatcher', 'HandlerResult']

logger = logging.getLogger("echonate.proxy.dispatcher")

# Error kind → terminal outcome. Anything else is ERRORED.
_FAILURE_OUTCOMES = {
    InsufficientPrivilegeError: Outcome.DENIED,
    UserDeclinedError: Outcome.CANCELLED,
}


@dataclass
class HandlerResult:
    outcome: Outcome
    data: Dict[str, Any] = field(default_factory=dict)
    # Record even when action logging is disabled
    force_audit: bool = False


def _require_str(payload: Mapping, key: str) -> str:
    value = payload.get(key)
    if not isinstance(value, str) or not value.strip():
        raise InvalidActionError(f"Payload field '{key}' is required")
    return value


class ActionDispatcher:
    """Routes ActionRequests to handlers under the gate."""

    def __init__(self, ctx: ControlPlaneContext, max_workers: int = MAX_EFFECT_WORKERS):
        self.ctx = ctx
        self.lock = threading.RLock()
        self._max_workers = max_workers
        self._executor = self._new_executor()
        # Futures of timed-out effects whose workers may still be running
        self._abandoned: List[Future] = []
        self.pool_replacements = 0
        self._handlers: Dict[ActionType, Callable[[Dict, Dict], HandlerResult]] = {
            ActionType.HANDLE_CHALLENGE: self._handle_challenge,
            ActionType.SOLVE_CAPTCHA: self._handle_captcha,
            ActionType.SYNC_SESSION: self._handle_session_sync,
            ActionType.SUBMIT_FORM: self._handle_form,
            ActionType.STORE_CREDENTIAL: self._handle_store_credential,
            ActionType.RETRIEVE_CREDENTIAL: self._handle_retrieve_credential,
            ActionType.EXPORT_AUDIT: self._handle_audit_export,
            ActionType.CHANGE_MODE: self._handle_mode_change,
            ActionType.UPDATE_CONFIG: self._handle_config_update,
            ActionType.ACCEPT_TERMS: self._handle_terms,
        }
        missing = set(ActionType) - set(self._handlers)
        if missing:
            raise ValueError("No handler for: " + ', '.join(sorted(m.value for m in missing)))

    # =========================================================================
    # ENTRY POINTS
    # =========================================================================

    def dispatch(self, request: Union[ActionRequest, Mapping[str, Any]]) -> ActionResponse:
        """Run one request to completion. Never raises for request failures."""
        if not isinstance(request, ActionRequest):
            try:
                request = ActionRequest.from_dict(request)
            except InvalidActionError as e:
                raw_type = request.get('type') if isinstance(request, Mapping) else None
                with self.lock:
                    return self._fail(str(raw_type or 'invalid-request'), e, {})

        audit: Dict[str, Any] = {}
        with self.lock:
            handler = self._handlers[request.type]
            try:
                result = handler(dict(request.payload), audit)
            except ControlPlaneError as e:
                return self._fail(request.type.value, e, audit)
            return self._finish(request.type.value, result, audit)

    def observe(self, event) -> ActionResponse:
        """Dispatch the request implied by a raw detection event."""
        try:
            request = wrap_detection_event(event)
        except InvalidActionError as e:
            with self.lock:
                return self._fail('detection-event', e, {})
        return self.dispatch(request)

    def clear_audit(self, confirmed: bool) -> ActionResponse:
        """Wipe the audit log. Anything but ``confirmed is True`` is a no-op.

        A successful wipe starts the new chain with one event recording it.
        """
        with self.lock:
            if not self.ctx.audit.clear(confirmed):
                return ActionResponse(True, Outcome.PERFORMED, {'cleared': False})
            result = HandlerResult(Outcome.PERFORMED, {'cleared': True}, force_audit=True)
            return self._finish('audit-clear', result, {'cleared': True})

    def status(self) -> Dict[str, Any]:
        ctx = self.ctx
        with self.lock:
            verified, broken_at = ctx.audit.verify_chain()
            return {
                'version': __version__,
                'mode': ctx.modes.current.value,
                'settings': dict(ctx.settings),
                'risk': ctx.risk().to_dict(),
                'terms_accepted': ctx.terms_accepted,
                'audit': {
                    'events': len(ctx.audit),
                    'enabled': ctx.audit.enabled,
                    'storage': ctx.settings['audit_storage'],
                    'chain_verified': verified and ctx.audit.tampered_at is None,
                    'first_broken_sequence': broken_at or ctx.audit.tampered_at,
                },
                'credentials': ctx.vault.sites(),
                'capabilities': ctx.registry.describe(ctx.settings),
                'providers': ctx.providers.describe(),
                'pending_confirmations': len(ctx.broker.get_all_pending()) if ctx.broker else 0,
                'effects': {
                    'stuck_workers': sum(1 for f in self._abandoned if not f.done()),
                    'max_workers': self._max_workers,
                    'pool_replacements': self.pool_replacements,
                },
                'warnings': list(ctx.load_warnings),
            }

    def shutdown(self) -> None:
        if self.ctx.broker is not None:
            self.ctx.broker.cancel_all()
        self._executor.shutdown(wait=False)

    # =========================================================================
    # AUDIT + RESPONSE
    # =========================================================================

    def _record(self, action: str, outcome: Outcome, details: Dict, force: bool = False):
        return self.ctx.audit.record(
            action, outcome.value, details,
            mode=self.ctx.modes.current.value,
            risk=self.ctx.risk().level.value,
            force=force,
        )

    def _finish(self, action: str, result: HandlerResult, audit: Dict) -> ActionResponse:
        event = self._record(action, result.outcome, audit, force=result.force_audit)
        return ActionResponse(
            success=True,
            outcome=result.outcome,
            data=result.data,
            audit_id=event.id if event else None,
        )

    def _fail(self, action: str, error: ControlPlaneError, audit: Dict) -> ActionResponse:
        outcome = _FAILURE_OUTCOMES.get(type(error), Outcome.ERRORED)
        details = dict(audit)
        details.update({'error_kind': error.kind, 'reason': error.reason})
        event = self._record(action, outcome, details)
        logger.info("%s %s: %s (%s)", action, outcome.value, error.kind, error.reason)
        return ActionResponse(
            success=False,
            outcome=outcome,
            error=error.reason,
            error_kind=error.kind,
            audit_id=event.id if event else None,
        )

    # =========================================================================
    # GATE + EFFECTS
    # =========================================================================

    def _gate(self, action_type: ActionType, payload: Dict, audit: Dict,
              message: str, context: Dict[str, Any] = None) -> GateDecision:
        """Evaluate the gate; returns a DEFER or PROCEED decision or raises.

        DENY → InsufficientPrivilegeError. CONFIRM blocks on the surface
        with the dispatch lock released; decline, cancel or timeout →
        UserDeclinedError. Once the lock is back the decision is re-run
        against the live mode and settings: a lowered mode →
        InsufficientPrivilegeError, a level dropped to manual → DEFER.
        """
        requested = None
        if payload.get('level') is not None:
            requested = AutomationLevel.parse(payload['level'])

        decision = self.ctx.gate.evaluate(action_type, self.ctx.settings, requested)
        audit['level'] = decision.level.value
        audit['required_mode'] = decision.required_mode.value

        if decision.verdict == GateVerdict.DENY:
            raise InsufficientPrivilegeError(decision.reason)
        if decision.verdict != GateVerdict.CONFIRM:
            return decision

        result = self._await_confirmation(message, context)
        audit['confirmation'] = result.choice.value
        decision = self.ctx.gate.settle(decision, result, self.ctx.settings, requested)
        audit['level'] = decision.level.value
        if decision.verdict == GateVerdict.CANCEL:
            raise UserDeclinedError(f"{action_type.value} not confirmed: {decision.reason}")
        if decision.verdict == GateVerdict.DENY:
            raise InsufficientPrivilegeError(decision.reason)
        return decision

    def _await_confirmation(self, message: str, context: Dict[str, Any] = None):
        # Caller holds the lock exactly once (dispatch). Release it so other
        # requests and the answer itself can get through.
        self.lock.release()
        try:
            return self.ctx.gate.ask(message, timeout=self.ctx.config.confirmation_timeout_seconds,
                                     context=context)
        finally:
            self.lock.acquire()

    def _effect_timeout(self, payload: Dict) -> float:
        timeout = payload.get('timeout')
        if timeout is None:
            return self.ctx.config.effect_timeout_seconds
        if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
            raise InvalidActionError(f"Invalid timeout: {timeout!r}")
        return float(timeout)

    def _run_effect(self, timeout: float, fn: Callable, *args):
        """Run a backend call with a bounded wait.

        Backend failures become AutomationError; a call that outlives
        ``timeout`` becomes EffectTimeoutError and its worker is abandoned.
        """
        future = self._executor.submit(fn, *args)
        try:
            return future.result(timeout=timeout)
        except FutureTimeout:
            future.cancel()
            self._abandon(future)
            raise EffectTimeoutError(f"{fn.__name__} did not finish within {timeout}s")
        except ControlPlaneError:
            raise
        except Exception as e:
            logger.error("Automation backend %s failed: %s", fn.__name__, e)
            raise AutomationError(f"{fn.__name__} failed: {e}") from e

    def _abandon(self, future) -> None:
        """Track a timed-out call; swap in a fresh pool once every worker is stuck."""
        self._abandoned = [f for f in self._abandoned if not f.done()]
        if not future.done():
            self._abandoned.append(future)
        logger.warning("Effect worker abandoned (%d/%d stuck)",
                       len(self._abandoned), self._max_workers)
        if len(self._abandoned) < self._max_workers:
            return
        logger.error("All %d effect workers are stuck on timed-out calls; "
                     "replacing the effect pool", self._max_workers)
        self._executor.shutdown(wait=False)
        self._executor = self._new_executor()
        self._abandoned = []
        self.pool_replacements += 1

    def _new_executor(self) -> ThreadPoolExecutor:
        return ThreadPoolExecutor(max_workers=self._max_workers,
                                  thread_name_prefix="echonate-effect")

    def _notify(self, timeout: float, title: str, message: str, **context) -> HandlerResult:
        self._run_effect(timeout, self.ctx.backend.notify_user, title, message, context)
        data = {'action': 'notify_user', 'message': message}
        data.update(context)
        return HandlerResult(Outcome.DEFERRED, data)

    # =========================================================================
    # HANDLERS — (payload, audit details) → HandlerResult
    # =========================================================================

    def _handle_challenge(self, payload: Dict, audit: Dict) -> HandlerResult:
        url = str(payload.get('url', ''))
        challenge_type = str(payload.get('challenge_type') or 'unknown')
        timeout = self._effect_timeout(payload)
        audit.update({'url': url, 'challenge_type': challenge_type,
                      'strategy': self.ctx.settings['challenge_strategy']})

        decision = self._gate(
            ActionType.HANDLE_CHALLENGE, payload, audit,
            f"{challenge_type} challenge detected. Assist with human-like interaction?",
            {'url': url, 'challenge_type': challenge_type})

        if decision.verdict == GateVerdict.DEFER:
            return self._notify(timeout, 'Security Challenge',
                                f"{challenge_type} challenge detected. Please complete manually.")

        if decision.level == AutomationLevel.ASSISTED:
            self._run_effect(timeout, self.ctx.backend.assist_challenge, url, challenge_type)
            return HandlerResult(Outcome.PERFORMED, {
                'action': 'inject_patterns',
                'message': 'Injecting human-like patterns to assist with challenge',
            })

        self._run_effect(timeout, self.ctx.backend.bypass_challenge, url, challenge_type)
        return HandlerResult(Outcome.PERFORMED, {
            'action': 'bypass_attempted',
            'message': 'Challenge bypass initiated',
        })

    def _handle_captcha(self, payload: Dict, audit: Dict) -> HandlerResult:
        captcha_type = str(payload.get('captcha_type') or 'unknown')
        provider_name = str(payload.get('provider') or DEFAULT_PROVIDER)
        timeout = self._effect_timeout(payload)
        cost = self.ctx.providers.cost(provider_name)
        audit.update({'captcha_type': captcha_type, 'provider': provider_name,
                      'captcha_mode': self.ctx.settings['captcha_mode']})

        decision = self._gate(
            ActionType.SOLVE_CAPTCHA, payload, audit,
            "CAPTCHA detected. Solve using external service?",
            {'provider': provider_name, 'cost': f"${cost}"})

        if decision.verdict == GateVerdict.DEFER:
            return self._notify(timeout, 'CAPTCHA Detected',
                                'CAPTCHA detected. Please solve manually.',
                                provider=provider_name, cost=cost)

        provider = self.ctx.providers.get(provider_name)
        audit['cost'] = provider.cost
        solution = self._run_effect(timeout, self.ctx.backend.solve_captcha,
                                    captcha_type, provider.name,
                                    payload.get('image'), provider.api_key)
        return HandlerResult(Outcome.PERFORMED, {
            'action': 'captcha_solved',
            'solution': solution,
            'provider': provider.name,
            'cost': provider.cost,
        })

    def _handle_session_sync(self, payload: Dict, audit: Dict) -> HandlerResult:
        source = _require_str(payload, 'source')
        target = _require_str(payload, 'target')
        timeout = self._effect_timeout(payload)
        verify = self.ctx.settings['session_verification']
        audit.update({'source': source, 'target': target, 'verification': verify})

        if verify:
            owner = self.ctx.backend.session_owner
            source_owner = self._run_effect(timeout, owner, source)
            target_owner = self._run_effect(timeout, owner, target)
            if source_owner is None or source_owner != target_owner:
                audit['cookies_transferred'] = 0
                raise OwnershipMismatchError(
                    f"Cannot sync session from {source} to {target}: ownership differs")

        decision = self._gate(ActionType.SYNC_SESSION, payload, audit,
                              f"Sync session from {source} to {target}?",
                              {'source': source, 'target': target})

        if decision.verdict == GateVerdict.DEFER:
            return self._notify(timeout, 'Session Sync',
                                'Session sync requested. Please copy the session manually.')

        copied = self._run_effect(timeout, self.ctx.backend.transfer_session, source, target)
        record = SessionTransferRecord(source, target, ownership_verified=verify,
                                       cookies_transferred=int(copied))
        audit['cookies_transferred'] = record.cookies_transferred
        return HandlerResult(Outcome.PERFORMED, record.to_dict())

    def _handle_form(self, payload: Dict, audit: Dict) -> HandlerResult:
        form_data = payload.get('form_data')
        if not isinstance(form_data, dict):
            raise InvalidActionError("Payload field 'form_data' must be an object")
        url = str(payload.get('url', ''))
        timeout = self._effect_timeout(payload)
        form_type = str(payload.get('form_type') or identify_form_type(form_data))
        audit.update({'url': url, 'form_type': form_type, 'fields': sorted(form_data),
                      'auto_submit': self.ctx.settings['form_auto_submit']})

        display = sanitize_for_display(form_data)
        decision = self._gate(ActionType.SUBMIT_FORM, payload, audit,
                              'Submit this form automatically?',
                              {'url': url, 'form_data': display})

        if decision.verdict == GateVerdict.DEFER:
            return self._notify(timeout, 'Form Detected',
                                'Form filled. Please review and submit manually.',
                                form_type=form_type)

        self._run_effect(timeout, self.ctx.backend.fill_form, url, form_data)
        self._run_effect(timeout, self.ctx.backend.submit_form, url, form_data)
        return HandlerResult(Outcome.PERFORMED, {
            'action': 'form_submitted',
            'form_type': form_type,
            'form_data': display,
        })

    def _handle_store_credential(self, payload: Dict, audit: Dict) -> HandlerResult:
        # Consent is its own check, independent of mode and confirmation
        if payload.get('consent') is not True:
            raise MissingConsentError("Storing credentials requires explicit consent")
        site = _require_str(payload, 'site')
        username = payload.get('username', '')
        password = payload.get('password', '')
        if not isinstance(username, str) or not isinstance(password, str):
            raise InvalidActionError("username and password must be strings")
        audit.update({'site': site, 'consent': True})

        decision = self._gate(ActionType.STORE_CREDENTIAL, payload, audit,
                              f"Store credentials for {site}?", {'site': site})
        if decision.verdict == GateVerdict.DEFER:
            return HandlerResult(Outcome.DEFERRED, {
                'action': 'notify_user',
                'message': 'Credential storage deferred. Please save credentials manually.',
            })

        record = self.ctx.vault.store(site, username, password)
        self.ctx.persist_credentials()
        return HandlerResult(Outcome.PERFORMED, {
            'site': record.site,
            'stored_at': record.stored_at,
            'encryption': record.encryption,
            'message': 'Credentials encrypted and stored locally',
        })

    def _handle_retrieve_credential(self, payload: Dict, audit: Dict) -> HandlerResult:
        site = _require_str(payload, 'site')
        audit['site'] = site
        if not self.ctx.vault.has(site):
            raise CredentialNotFoundError(f"No credentials stored for {site}")

        decision = self._gate(ActionType.RETRIEVE_CREDENTIAL, payload, audit,
                              f"Release stored credentials for {site}?", {'site': site})
        if decision.verdict == GateVerdict.DEFER:
            return HandlerResult(Outcome.DEFERRED, {
                'action': 'notify_user',
                'message': f"Credentials for {site} are stored. Please enter them manually.",
            })

        credentials = self.ctx.vault.retrieve(site)
        return HandlerResult(Outcome.PERFORMED, {'site': site, **credentials})

    def _handle_audit_export(self, payload: Dict, audit: Dict) -> HandlerResult:
        if self.ctx.settings['audit_storage'] == 'none':
            raise AuditDisabledError("Audit storage is disabled (audit_storage=none)")
        self._gate(ActionType.EXPORT_AUDIT, payload, audit, "Export the audit log?")
        export = self.ctx.audit.export()
        audit['event_count'] = export['event_count']
        return HandlerResult(Outcome.PERFORMED, export)

    def _handle_mode_change(self, payload: Dict, audit: Dict) -> HandlerResult:
        target = Mode.parse(payload.get('mode'))
        justification = payload.get('justification')
        if not isinstance(justification, str) or not justification.strip():
            raise JustificationRequiredError("Mode change requires a non-empty justification")

        self._gate(ActionType.CHANGE_MODE, payload, audit,
                   f"Switch to {target.value} mode?")
        transition = self.ctx.modes.transition(target, justification)
        self.ctx.persist_mode()
        audit.update(transition.to_dict())
        return HandlerResult(Outcome.PERFORMED, {
            **transition.to_dict(),
            'mode': transition.to_mode.value,
            'risk': self.ctx.risk().to_dict(),
        })

    def _handle_config_update(self, payload: Dict, audit: Dict) -> HandlerResult:
        key = payload.get('key')
        if not isinstance(key, str):
            raise UnknownSettingError(f"Unknown setting: {key!r}")
        value = validate_setting(key, payload.get('value'))

        self._gate(ActionType.UPDATE_CONFIG, payload, audit, f"Change {key}?")
        previous = self.ctx.settings[key]
        self.ctx.settings[key] = value
        self.ctx.apply_audit_settings()
        self.ctx.persist_settings()
        audit.update({'key': key, 'previous': previous, 'value': value})

        risk = self.ctx.risk()
        logger.info("Setting %s: %r → %r (risk %s)", key, previous, value, risk.level.value)
        return HandlerResult(
            Outcome.PERFORMED,
            {'key': key, 'previous': previous, 'value': value, 'risk': risk.to_dict()},
            force_audit=(key == 'action_logging'),
        )

    def _handle_terms(self, payload: Dict, audit: Dict) -> HandlerResult:
        if payload.get('accepted') is not True:
            raise TermsNotAcceptedError("Terms must be accepted to use EchoNate")
        self._gate(ActionType.ACCEPT_TERMS, payload, audit, "Accept terms?")
        self.ctx.terms_accepted = True
        self.ctx.persist_terms()
        accepted_at = datetime.now().isoformat()
        audit['accepted_at'] = accepted_at
        return HandlerResult(Outcome.PERFORMED, {
            'accepted': True,
            'accepted_at': accepted_at,
            'message': 'Terms accepted. Full functionality enabled.',
        })
