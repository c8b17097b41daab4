"""
EchoNate — Capability-Gating Control Plane for Navigation Automation

A layered policy engine sitting in front of browser-automation primitives:

- core/  : Mode state machine, capability registry, risk scoring, audit log,
           credential vault, persistence
- proxy/ : Confirmation gate, action dispatcher, HTTP control surface, client

Every sensitive action is either performed, deferred to the user, denied, or
cancelled, and every decision lands in a chain-hashed audit trail.

Version: 2.0.0
"""

__version__ = "2.0.0"
