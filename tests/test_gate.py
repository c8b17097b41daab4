#!/usr/bin/env python3
"""
Tests for the confirmation gate and the confirmation broker.

Tests:
- Verdict per automation level and mode
- Settling a CONFIRM decision: confirm / decline / cancel / timeout
- Mode or settings changed during the wait deny or defer the action
- Broker: blocking present(), resolution over another thread, timeouts
"""

import threading
import time

import pytest

from echonate.core.access.modes import ModeStateMachine
from echonate.core.access.registry import CapabilityRegistry
from echonate.core.access.settings import DEFAULT_SETTINGS
from echonate.core.types import (
    ActionType, AutomationLevel, ConfirmationChoice, GateVerdict, Mode,
)
from echonate.proxy.confirmation import ConfirmationBroker
from echonate.proxy.gate import ConfirmationGate

from conftest import ScriptedSurface


@pytest.fixture
def modes():
    return ModeStateMachine()


@pytest.fixture
def gate(modes):
    return ConfirmationGate(CapabilityRegistry(), modes, ScriptedSurface())


class TestEvaluate:

    def test_manual_defers(self, gate):
        decision = gate.evaluate(ActionType.HANDLE_CHALLENGE, DEFAULT_SETTINGS)
        assert decision.verdict == GateVerdict.DEFER
        assert decision.level == AutomationLevel.MANUAL

    def test_assisted_requires_confirmation(self, gate):
        decision = gate.evaluate(ActionType.STORE_CREDENTIAL, DEFAULT_SETTINGS)
        assert decision.verdict == GateVerdict.CONFIRM

    def test_automated_proceeds(self, gate):
        decision = gate.evaluate(ActionType.CHANGE_MODE, DEFAULT_SETTINGS)
        assert decision.verdict == GateVerdict.PROCEED

    def test_insufficient_mode_denies(self, gate):
        settings = dict(DEFAULT_SETTINGS, captcha_mode='assisted')
        decision = gate.evaluate(ActionType.SOLVE_CAPTCHA, settings)
        assert decision.verdict == GateVerdict.DENY
        assert decision.required_mode == Mode.ADVANCED
        assert decision.mode == Mode.STANDARD
        assert "requires advanced" in decision.reason

    def test_deny_takes_precedence_over_level(self, gate, modes):
        settings = dict(DEFAULT_SETTINGS, challenge_strategy='bypass')
        assert gate.evaluate(ActionType.HANDLE_CHALLENGE, settings).verdict == GateVerdict.DENY
        modes.transition(Mode.ADVANCED, "step up")
        assert gate.evaluate(ActionType.HANDLE_CHALLENGE, settings).verdict == GateVerdict.DENY
        modes.transition(Mode.RESEARCH, "step up")
        assert gate.evaluate(ActionType.HANDLE_CHALLENGE, settings).verdict == GateVerdict.PROCEED

    def test_requested_level_needs_its_mode_but_keeps_configured_level(self, gate, modes):
        requested = AutomationLevel.AUTOMATED
        denied = gate.evaluate(ActionType.SOLVE_CAPTCHA, DEFAULT_SETTINGS, requested)
        assert denied.verdict == GateVerdict.DENY
        assert denied.required_mode == Mode.RESEARCH

        modes.transition(Mode.RESEARCH, "step up")
        deferred = gate.evaluate(ActionType.SOLVE_CAPTCHA, DEFAULT_SETTINGS, requested)
        assert deferred.verdict == GateVerdict.DEFER
        assert deferred.level == AutomationLevel.MANUAL

    def test_requested_automated_still_confirms(self, gate):
        decision = gate.evaluate(ActionType.RETRIEVE_CREDENTIAL, DEFAULT_SETTINGS,
                                 AutomationLevel.AUTOMATED)
        assert decision.verdict == GateVerdict.CONFIRM

    def test_requested_manual_defers(self, gate):
        decision = gate.evaluate(ActionType.STORE_CREDENTIAL, DEFAULT_SETTINGS,
                                 AutomationLevel.MANUAL)
        assert decision.verdict == GateVerdict.DEFER

    def test_evaluate_has_no_side_effects(self, gate, modes):
        surface = gate.surface
        for _ in range(5):
            gate.evaluate(ActionType.SOLVE_CAPTCHA, DEFAULT_SETTINGS, AutomationLevel.AUTOMATED)
        assert surface.prompts == []
        assert modes.current == Mode.STANDARD


class TestSettle:

    @pytest.mark.parametrize("choice", [
        ConfirmationChoice.DECLINE, ConfirmationChoice.CANCELLED, ConfirmationChoice.TIMEOUT,
    ])
    def test_anything_but_confirm_cancels(self, gate, choice):
        gate.surface.choice = choice
        decision = gate.evaluate(ActionType.SYNC_SESSION, DEFAULT_SETTINGS)
        settled = gate.settle(decision, gate.ask("Sync?"), DEFAULT_SETTINGS)
        assert settled.verdict == GateVerdict.CANCEL
        assert choice.value in settled.reason

    def test_confirm_proceeds(self, gate):
        decision = gate.evaluate(ActionType.SYNC_SESSION, DEFAULT_SETTINGS)
        answer = gate.ask("Sync?", context={'source': 'tab-1'})
        settled = gate.settle(decision, answer, DEFAULT_SETTINGS)
        assert settled.verdict == GateVerdict.PROCEED
        assert settled.level == AutomationLevel.ASSISTED
        assert gate.surface.prompts[0]['context'] == {'source': 'tab-1'}

    def test_mode_lowered_during_wait_denies(self, gate, modes):
        modes.transition(Mode.ADVANCED, "assist captchas")
        settings = dict(DEFAULT_SETTINGS, captcha_mode='assisted')
        decision = gate.evaluate(ActionType.SOLVE_CAPTCHA, settings)
        assert decision.verdict == GateVerdict.CONFIRM

        gate.surface.on_present = lambda: modes.transition(Mode.STANDARD, "done")
        settled = gate.settle(decision, gate.ask("Solve?"), settings)
        assert settled.verdict == GateVerdict.DENY
        assert settled.mode == Mode.STANDARD

    def test_level_lowered_to_manual_during_wait_defers(self, gate, modes):
        modes.transition(Mode.ADVANCED, "assist captchas")
        settings = dict(DEFAULT_SETTINGS, captcha_mode='assisted')
        decision = gate.evaluate(ActionType.SOLVE_CAPTCHA, settings)

        gate.surface.on_present = lambda: settings.update(captcha_mode='manual')
        settled = gate.settle(decision, gate.ask("Solve?"), settings)
        assert settled.verdict == GateVerdict.DEFER
        assert settled.level == AutomationLevel.MANUAL
        assert "settings changed" in settled.reason

    def test_level_raised_during_wait_denies(self, gate, modes):
        modes.transition(Mode.ADVANCED, "assist captchas")
        settings = dict(DEFAULT_SETTINGS, captcha_mode='assisted')
        decision = gate.evaluate(ActionType.SOLVE_CAPTCHA, settings)

        gate.surface.on_present = lambda: settings.update(captcha_mode='automated')
        settled = gate.settle(decision, gate.ask("Solve?"), settings)
        assert settled.verdict == GateVerdict.DENY
        assert settled.required_mode == Mode.RESEARCH

    def test_confirmation_switched_off_during_wait_keeps_confirmed_level(self, gate):
        settings = dict(DEFAULT_SETTINGS)
        decision = gate.evaluate(ActionType.STORE_CREDENTIAL, settings)
        gate.surface.on_present = lambda: settings.update(user_confirmation=False)
        settled = gate.settle(decision, gate.ask("Store?"), settings)
        assert settled.verdict == GateVerdict.PROCEED
        assert settled.level == AutomationLevel.ASSISTED


class TestConfirmationBroker:

    def _present_async(self, broker, timeout=5):
        box = {}

        def run():
            box['result'] = broker.present("Proceed?", timeout=timeout, context={'site': 'a'})

        t = threading.Thread(target=run)
        t.start()
        deadline = time.time() + 5
        while not broker.get_all_pending() and time.time() < deadline:
            time.sleep(0.01)
        return t, box

    def test_confirm_unblocks_waiter(self):
        broker = ConfirmationBroker()
        t, box = self._present_async(broker)
        pending = broker.get_all_pending()
        assert len(pending) == 1
        assert pending[0]['context'] == {'site': 'a'}
        assert 'event' not in pending[0]
        assert broker.confirm(pending[0]['id'])
        t.join(5)
        assert box['result'].confirmed
        assert broker.get_all_pending() == []

    def test_decline_and_cancel(self):
        for method, choice in (('decline', ConfirmationChoice.DECLINE),
                               ('cancel', ConfirmationChoice.CANCELLED)):
            broker = ConfirmationBroker()
            t, box = self._present_async(broker)
            cid = broker.get_all_pending()[0]['id']
            assert getattr(broker, method)(cid)
            t.join(5)
            assert box['result'].choice == choice

    def test_timeout(self):
        broker = ConfirmationBroker()
        result = broker.present("Proceed?", timeout=0.05)
        assert result.choice == ConfirmationChoice.TIMEOUT
        assert broker.get_all_pending() == []

    def test_unknown_or_answered_id(self):
        broker = ConfirmationBroker()
        assert not broker.confirm("deadbeef")
        t, box = self._present_async(broker)
        cid = broker.get_all_pending()[0]['id']
        assert broker.decline(cid)
        assert not broker.confirm(cid)
        t.join(5)
        assert box['result'].choice == ConfirmationChoice.DECLINE

    def test_cancel_all(self):
        broker = ConfirmationBroker()
        t, box = self._present_async(broker)
        assert broker.cancel_all() == 1
        t.join(5)
        assert box['result'].choice == ConfirmationChoice.CANCELLED
