"""
EchoNate — Integration Tests for Startup and Shutdown
======================================================

Tests the control-plane lifecycle:
  - Fresh start on an empty base directory
  - Restart picks up persisted state from the JSON state file
  - Banner output and generated API secret
  - Shutdown cancels open confirmations and is idempotent
  - Entry-point argument handling

Run with:  pytest tests/test_startup.py -v --tb=short
"""

import json
import sys
import threading
import time
from unittest.mock import patch

import pytest

from echonate.core.config import UnifiedConfig
from echonate.core.types import ConfirmationChoice, Mode
from echonate.proxy.orchestrator import EchoNateControlPlane, main


def make_config(tmp_path, **overrides) -> UnifiedConfig:
    cfg = UnifiedConfig(base_dir=tmp_path)
    cfg.listen_host = "127.0.0.1"
    cfg.listen_port = 0
    for k, v in overrides.items():
        setattr(cfg, k, v)
    return cfg


class TestFreshStart:

    def test_empty_directory(self, tmp_path):
        plane = EchoNateControlPlane(make_config(tmp_path))
        try:
            status = plane.dispatcher.status()
            assert status['mode'] == 'standard'
            assert status['risk']['level'] == 'LOW'
            assert status['audit']['events'] == 0
            assert status['terms_accepted'] is False
            assert (tmp_path / "data" / "vault.key").exists()
        finally:
            plane.stop()

    def test_banner_shows_generated_secret(self, tmp_path, capsys):
        plane = EchoNateControlPlane(make_config(tmp_path))
        try:
            plane._print_startup_banner()
            out = capsys.readouterr().out
            assert "EchoNate Control Plane" in out
            assert plane.server.api_secret in out
            assert "Mode      : standard" in out
        finally:
            plane.stop()

    def test_configured_secret_is_not_printed(self, tmp_path, capsys):
        plane = EchoNateControlPlane(make_config(tmp_path, api_secret="configured-secret"))
        try:
            plane._print_startup_banner()
            assert "configured-secret" not in capsys.readouterr().out
        finally:
            plane.stop()


class TestRestart:

    def test_state_file_round_trip(self, tmp_path):
        config = make_config(tmp_path)
        plane = EchoNateControlPlane(config)
        plane.dispatcher.dispatch({'type': 'change-mode',
                                   'payload': {'mode': 'advanced', 'justification': 'qa'}})
        plane.stop()

        state = json.loads(config.state_file.read_text())
        assert state['mode'] == 'advanced'
        assert len(state['audit_log']) == 1

        again = EchoNateControlPlane(make_config(tmp_path))
        try:
            assert again.ctx.modes.current == Mode.ADVANCED
            assert again.dispatcher.status()['audit']['chain_verified'] is True
        finally:
            again.stop()


class TestShutdown:

    def test_stop_cancels_pending_confirmations(self, tmp_path):
        plane = EchoNateControlPlane(make_config(tmp_path))
        box = {}

        def run():
            box['result'] = plane.ctx.broker.present("Proceed?", timeout=5)

        t = threading.Thread(target=run)
        t.start()
        deadline = time.time() + 5
        while not plane.ctx.broker.get_all_pending() and time.time() < deadline:
            time.sleep(0.01)

        plane.stop()
        plane.stop()
        t.join(5)
        assert box['result'].choice == ConfirmationChoice.CANCELLED


class TestEntryPoint:

    def test_cli_overrides_config_file(self, tmp_path, monkeypatch):
        (tmp_path / "config").mkdir()
        (tmp_path / "config" / "config.json").write_text(json.dumps({
            'server': {'port': 12000}, 'timeouts': {'confirmation_seconds': 30}}))
        monkeypatch.setenv('ECHONATE_API_SECRET', 'from-env')
        monkeypatch.setattr(sys, 'argv', ['echonate', '--base-dir', str(tmp_path),
                                          '--port', '12001'])

        captured = {}

        class FakePlane:
            def __init__(self, config):
                captured['config'] = config

            def start(self):
                pass

            def stop(self):
                pass

        with patch('echonate.proxy.orchestrator.EchoNateControlPlane', FakePlane), \
             patch('echonate.proxy.orchestrator.configure_logging'), \
             patch('echonate.proxy.orchestrator.signal.signal'):
            assert main() == 0

        config = captured['config']
        assert config.listen_port == 12001
        assert config.confirmation_timeout_seconds == 30.0
        assert config.api_secret == 'from-env'
        assert config.state_file == tmp_path / "data" / "state.json"
