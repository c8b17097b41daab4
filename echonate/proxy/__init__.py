"""
EchoNate Proxy — Enforcement layer in front of the automation backend.

Every sensitive action enters through the ActionDispatcher, passes the
ConfirmationGate, and leaves exactly one audit event behind.

Classes:
- ActionDispatcher: Request → handler → gate → effect → audit
- ConfirmationGate: Deny / defer / confirm / proceed decisions
- ConfirmationBroker: Pending confirmations answered over HTTP
- ControlPlaneContext: Per-process state, built by build_context()
- ControlPlaneServer: Flask HTTP control surface
- ControlPlaneClient: requests-based client for the HTTP surface
- EchoNateControlPlane: Startup/shutdown orchestration
- LoggingAutomationBackend: Default backend that records effects
"""

from echonate.proxy.automation import AutomationBackend, LoggingAutomationBackend
from echonate.proxy.confirmation import ConfirmationSurface, ConfirmationBroker
from echonate.proxy.gate import ConfirmationGate
from echonate.proxy.context import ControlPlaneContext, build_context
from echonate.proxy.dispatcher import ActionDispatcher, HandlerResult
from echonate.proxy.api_server import ControlPlaneServer
from echonate.proxy.client import ControlPlaneClient
from echonate.proxy.orchestrator import EchoNateControlPlane

__all__ = [
    'AutomationBackend',
    'LoggingAutomationBackend',
    'ConfirmationSurface',
    'ConfirmationBroker',
    'ConfirmationGate',
    'ControlPlaneContext',
    'build_context',
    'ActionDispatcher',
    'HandlerResult',
    'ControlPlaneServer',
    'ControlPlaneClient',
    'EchoNateControlPlane',
]
