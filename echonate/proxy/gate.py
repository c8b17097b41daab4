#!/usr/bin/env python3
"""
Confirmation Gate — Decides whether one request may proceed.

Composes the capability registry, the mode state machine and a
confirmation surface:

    mode < required mode for the request           → DENY
    level == manual                                → DEFER (notify only)
    level == assisted                              → CONFIRM (ask the user)
    level == automated                             → PROCEED

The level is the stricter of the configured and the requested level; the
required mode is the higher of their requirements.

A CONFIRM decision is settled by settle() once the user has answered:
CANCEL on decline, cancel or timeout, DENY if the mode was lowered while
waiting, DENY or DEFER if the live settings no longer allow the action,
PROCEED otherwise.

The gate never writes audit events and never performs effects; the
dispatcher does both, once per request.
"""

import logging
from typing import Any, Dict, Mapping, Optional, Sequence

from echonate.core.access.modes import ModeStateMachine
from echonate.core.access.registry import CapabilityRegistry
from echonate.core.types import (
    ActionType, AutomationLevel, GateDecision, GateVerdict,
)
from echonate.proxy.confirmation import ConfirmationSurface, DEFAULT_OPTIONS

__all__ = ['ConfirmationGate']

logger = logging.getLogger("echonate.proxy.gate")


class ConfirmationGate:

    def __init__(self, registry: CapabilityRegistry, modes: ModeStateMachine,
                 surface: ConfirmationSurface):
        self.registry = registry
        self.modes = modes
        self.surface = surface

    def evaluate(self, action_type: ActionType, settings: Mapping[str, Any],
                 requested_level: Optional[AutomationLevel] = None) -> GateDecision:
        level = self.registry.effective_level(action_type, settings, requested_level)
        required = self.registry.request_mode(action_type, settings, requested_level)
        current = self.modes.current

        if not self.modes.allows(required):
            verdict = GateVerdict.DENY
            reason = (f"{action_type.value} at {level.value} level requires "
                      f"{required.value} mode (current: {current.value})")
        elif level == AutomationLevel.MANUAL:
            verdict, reason = GateVerdict.DEFER, "manual level: notify only"
        elif level == AutomationLevel.ASSISTED:
            verdict, reason = GateVerdict.CONFIRM, "assisted level: confirmation required"
        else:
            verdict, reason = GateVerdict.PROCEED, "automated level"

        logger.debug("gate %s level=%s mode=%s → %s", action_type.value,
                     level.value, current.value, verdict.value)
        return GateDecision(verdict, action_type, level, current, required, reason)

    def recheck(self, decision: GateDecision) -> GateDecision:
        """Re-run the mode check for a decision against the live mode."""
        current = self.modes.current
        if self.modes.allows(decision.required_mode):
            return GateDecision(decision.verdict, decision.action_type, decision.level,
                                current, decision.required_mode, decision.reason)
        return GateDecision(
            GateVerdict.DENY, decision.action_type, decision.level, current,
            decision.required_mode,
            f"mode lowered to {current.value} while awaiting confirmation "
            f"(requires {decision.required_mode.value})")

    def ask(self, message: str, options: Sequence[str] = DEFAULT_OPTIONS,
            timeout: float = None, context: Dict[str, Any] = None):
        """Present the confirmation. Blocks; call without holding the dispatch lock."""
        return self.surface.present(message, options, timeout, context)

    def settle(self, decision: GateDecision, result, settings: Mapping[str, Any],
               requested_level: Optional[AutomationLevel] = None) -> GateDecision:
        """Turn a CONFIRM decision plus the user's answer into a final verdict.

        ``settings`` must be the live settings at the time of the answer.
        """
        if not result.confirmed:
            return GateDecision(
                GateVerdict.CANCEL, decision.action_type, decision.level,
                self.modes.current, decision.required_mode,
                f"user {result.choice.value}")
        rechecked = self.recheck(decision)
        if rechecked.verdict == GateVerdict.DENY:
            return rechecked

        live = self.evaluate(decision.action_type, settings, requested_level)
        if live.verdict in (GateVerdict.DENY, GateVerdict.DEFER):
            logger.info("%s: settings changed while awaiting confirmation → %s",
                        decision.action_type.value, live.verdict.value)
            return GateDecision(
                live.verdict, live.action_type, live.level, live.mode, live.required_mode,
                f"settings changed while awaiting confirmation ({live.reason})")
        return GateDecision(GateVerdict.PROCEED, decision.action_type, decision.level,
                            rechecked.mode, decision.required_mode, "confirmed by user")
