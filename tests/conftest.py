"""
Shared pytest fixtures for the EchoNate test suite.

Provides an isolated control plane per test: temp base directory, an
in-memory store, an ephemeral cipher key, a recording automation backend
and a scripted confirmation surface, so no test touches real state or
waits on a human.
"""

import sys
import threading
from pathlib import Path
from typing import List

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

# Import after path fix
from echonate.core.config import UnifiedConfig
from echonate.core.crypto.cipher import CredentialCipher
from echonate.core.persistence.store import MemoryStore
from echonate.core.types import ConfirmationChoice, ConfirmationResult
from echonate.proxy.automation import LoggingAutomationBackend
from echonate.proxy.confirmation import ConfirmationSurface
from echonate.proxy.context import build_context
from echonate.proxy.dispatcher import ActionDispatcher


# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------

class ScriptedSurface(ConfirmationSurface):
    """Answers every confirmation with a preset choice and records prompts."""

    def __init__(self, choice: ConfirmationChoice = ConfirmationChoice.CONFIRM):
        self.choice = choice
        self.prompts: List[dict] = []
        self.on_present = None

    def present(self, message, options=('confirm', 'decline'), timeout=None, context=None):
        self.prompts.append({'message': message, 'options': list(options),
                             'timeout': timeout, 'context': dict(context or {})})
        if self.on_present is not None:
            self.on_present()
        return ConfirmationResult(self.choice)


class BlockingStore(MemoryStore):
    """MemoryStore whose first write of ``block_key`` waits for ``release``."""

    def __init__(self, block_key: str):
        super().__init__()
        self.block_key = block_key
        self.entered = threading.Event()
        self.release = threading.Event()
        self._blocked_once = False

    def set(self, key, value):
        if key == self.block_key and not self._blocked_once:
            self._blocked_once = True
            self.entered.set()
            self.release.wait(5)
        super().set(key, value)


# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def config(tmp_path):
    """A UnifiedConfig pointing at the temp directory, with short timeouts."""
    cfg = UnifiedConfig(base_dir=tmp_path)
    cfg.listen_host = "127.0.0.1"
    cfg.listen_port = 0
    cfg.confirmation_timeout_seconds = 2
    cfg.effect_timeout_seconds = 5
    cfg.api_secret = "test-secret"
    return cfg


# ---------------------------------------------------------------------------
# Collaborator fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def cipher():
    return CredentialCipher.ephemeral()


@pytest.fixture
def backend():
    """Recording backend: tab-1/tab-2 share an owner, tab-3 belongs to someone else."""
    return LoggingAutomationBackend(
        owners={'tab-1': 'alice', 'tab-2': 'alice', 'tab-3': 'mallory'},
        cookies={'tab-1': ['sid', 'csrftoken', 'prefs'], 'tab-3': ['sid']},
    )


@pytest.fixture
def surface():
    return ScriptedSurface(ConfirmationChoice.CONFIRM)


# ---------------------------------------------------------------------------
# Control plane fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def ctx(config, store, backend, surface, cipher):
    return build_context(config, store=store, backend=backend,
                         surface=surface, cipher=cipher)


@pytest.fixture
def dispatcher(ctx):
    d = ActionDispatcher(ctx)
    yield d
    d.shutdown()


def set_setting(dispatcher, key, value):
    """Apply one setting through the dispatcher and assert it took."""
    response = dispatcher.dispatch({'type': 'update-config',
                                    'payload': {'key': key, 'value': value}})
    assert response.success, response.error
    return response


def set_mode(dispatcher, mode, justification="test"):
    response = dispatcher.dispatch({'type': 'change-mode',
                                    'payload': {'mode': mode, 'justification': justification}})
    assert response.success, response.error
    return response
