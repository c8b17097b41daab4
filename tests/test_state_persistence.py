#!/usr/bin/env python3
"""
Tests for durable state: the JSON file store, settings merge and the
reload path through build_context().

Tests:
- JsonFileStore writes, reloads and survives a corrupt file
- Persisted settings merge over defaults; unknown/invalid values dropped
- Mode, settings, terms, credentials and audit survive a restart
- Invalid persisted mode and broken audit chains surface as warnings
- config.json overlay
"""

import json

import pytest

from echonate.core.access.settings import DEFAULT_SETTINGS, merge_settings
from echonate.core.config import UnifiedConfig, load_config_from_file
from echonate.core.constants import KEY_AUDIT_LOG, KEY_CONFIG, KEY_MODE
from echonate.core.persistence.store import JsonFileStore, MemoryStore
from echonate.core.types import Mode
from echonate.proxy.context import build_context
from echonate.proxy.dispatcher import ActionDispatcher

from conftest import ScriptedSurface, set_mode, set_setting


class TestJsonFileStore:

    def test_round_trip(self, tmp_path):
        path = tmp_path / "data" / "state.json"
        store = JsonFileStore(path)
        store.set('mode', 'advanced')
        store.set('config', {'captcha_mode': 'assisted'})
        assert json.loads(path.read_text())['mode'] == 'advanced'

        reopened = JsonFileStore(path)
        assert reopened.get(['mode', 'config', 'missing']) == {
            'mode': 'advanced', 'config': {'captcha_mode': 'assisted'}}

    def test_values_are_copied(self, tmp_path):
        store = JsonFileStore(tmp_path / "state.json")
        value = {'a': [1]}
        store.set('k', value)
        value['a'].append(2)
        got = store.get(['k'])['k']
        got['a'].append(3)
        assert store.get(['k'])['k'] == {'a': [1]}

    @pytest.mark.parametrize("content", ["{broken", "[1, 2, 3]"])
    def test_unreadable_file_starts_empty(self, tmp_path, content):
        path = tmp_path / "state.json"
        path.write_text(content)
        store = JsonFileStore(path)
        assert store.get(['mode']) == {}
        store.set('mode', 'standard')
        assert json.loads(path.read_text()) == {'mode': 'standard'}

    def test_no_temp_file_left_behind(self, tmp_path):
        store = JsonFileStore(tmp_path / "state.json")
        store.set('mode', 'research')
        assert sorted(p.name for p in tmp_path.iterdir()) == ['state.json']


class TestMergeSettings:

    def test_none_gives_defaults(self):
        assert merge_settings(None) == DEFAULT_SETTINGS

    def test_unknown_keys_and_bad_values_dropped(self):
        merged = merge_settings({
            'captcha_mode': 'assisted',
            'form_auto_submit': 'yes',
            'challenge_strategy': 'smash',
            'telemetry': True,
        })
        assert merged['captcha_mode'] == 'assisted'
        assert merged['form_auto_submit'] is False
        assert merged['challenge_strategy'] == 'wait'
        assert 'telemetry' not in merged

    def test_defaults_not_mutated(self):
        merge_settings({'captcha_mode': 'automated'})
        assert DEFAULT_SETTINGS['captcha_mode'] == 'manual'


class TestRestart:

    def _plane(self, config, store, cipher):
        ctx = build_context(config, store=store, surface=ScriptedSurface(), cipher=cipher)
        return ActionDispatcher(ctx)

    def test_state_survives_restart(self, config, cipher):
        store = JsonFileStore(config.state_file)
        first = self._plane(config, store, cipher)
        set_mode(first, 'advanced', "assisted testing")
        set_setting(first, 'captcha_mode', 'assisted')
        first.dispatch({'type': 'accept-terms', 'payload': {'accepted': True}})
        first.dispatch({'type': 'store-credential',
                        'payload': {'site': 'bank.test', 'username': 'alice',
                                    'password': 's3cret', 'consent': True}})
        last_hash = first.ctx.audit.events[-1].chain_hash
        first.shutdown()

        assert 's3cret' not in config.state_file.read_text()

        second = self._plane(config, JsonFileStore(config.state_file), cipher)
        try:
            ctx = second.ctx
            assert ctx.modes.current == Mode.ADVANCED
            assert ctx.settings['captcha_mode'] == 'assisted'
            assert ctx.terms_accepted is True
            assert ctx.vault.retrieve('bank.test')['password'] == 's3cret'
            assert len(ctx.audit) == 4
            assert ctx.load_warnings == []
            event = ctx.audit.record('change-mode', 'performed')
            assert event.previous_hash == last_hash
        finally:
            second.shutdown()

    def test_key_file_used_when_no_cipher_given(self, config):
        store = MemoryStore()
        ctx = build_context(config, store=store, surface=ScriptedSurface())
        ctx.vault.store('a.test', 'u', 'p')
        ctx.persist_credentials()
        assert config.key_file.exists()

        again = build_context(config, store=store, surface=ScriptedSurface())
        assert again.vault.retrieve('a.test') == {'username': 'u', 'password': 'p'}

    def test_invalid_persisted_mode_falls_back(self, config, cipher):
        store = MemoryStore({KEY_MODE: 'godmode'})
        ctx = build_context(config, store=store, surface=ScriptedSurface(), cipher=cipher)
        assert ctx.modes.current == Mode.STANDARD
        assert any('godmode' in w for w in ctx.load_warnings)

    def test_persisted_settings_are_validated(self, config, cipher):
        store = MemoryStore({KEY_CONFIG: {'user_confirmation': 'no', 'captcha_mode': 'automated'}})
        ctx = build_context(config, store=store, surface=ScriptedSurface(), cipher=cipher)
        assert ctx.settings['user_confirmation'] is True
        assert ctx.settings['captcha_mode'] == 'automated'

    def test_tampered_audit_log_is_reported(self, config, cipher):
        store = MemoryStore()
        plane = self._plane(config, store, cipher)
        for _ in range(3):
            plane.dispatch({'type': 'accept-terms', 'payload': {'accepted': True}})
        plane.shutdown()

        raw = store.get([KEY_AUDIT_LOG])[KEY_AUDIT_LOG]
        raw[1]['outcome'] = 'denied'
        store.set(KEY_AUDIT_LOG, raw)

        reloaded = self._plane(config, store, cipher)
        try:
            status = reloaded.status()
            assert status['audit']['chain_verified'] is False
            assert status['audit']['first_broken_sequence'] == 2
            assert any('sequence 2' in w for w in status['warnings'])
        finally:
            reloaded.shutdown()

    def test_memory_audit_storage_starts_empty(self, config, cipher):
        store = MemoryStore()
        plane = self._plane(config, store, cipher)
        plane.dispatch({'type': 'accept-terms', 'payload': {'accepted': True}})
        set_setting(plane, 'audit_storage', 'memory')
        plane.shutdown()

        reloaded = self._plane(config, store, cipher)
        try:
            assert reloaded.ctx.settings['audit_storage'] == 'memory'
            assert len(reloaded.ctx.audit) == 0
            assert reloaded.ctx.audit.persist is False
        finally:
            reloaded.shutdown()

    def test_capability_overrides_from_config(self, config, cipher):
        config.capability_overrides = {'solve-captcha': 'assisted', 'export-audit': 'manual'}
        ctx = build_context(config, store=MemoryStore(), surface=ScriptedSurface(), cipher=cipher)
        assert ctx.registry.get_all_overrides() == {'solve-captcha': 'assisted'}
        assert any('export-audit' in w for w in ctx.load_warnings)


class TestConfigFile:

    def test_missing_file(self, tmp_path):
        assert load_config_from_file(UnifiedConfig(base_dir=tmp_path), tmp_path / "none.json") is False

    def test_overlay(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({
            'server': {'host': '0.0.0.0', 'port': 12000,
                       'cors_allowed_origins': ['chrome-extension://abc']},
            'timeouts': {'confirmation_seconds': 15, 'effect_seconds': 3},
            'captcha': {'api_keys': {'2captcha': 'k'}},
            'capabilities': {'overrides': {'submit-form': 'assisted'}},
            'log_level': 'debug',
        }))
        config = UnifiedConfig(base_dir=tmp_path)
        assert load_config_from_file(config, path)
        assert (config.listen_host, config.listen_port) == ('0.0.0.0', 12000)
        assert config.cors_allowed_origins == ['chrome-extension://abc']
        assert config.confirmation_timeout_seconds == 15.0
        assert config.effect_timeout_seconds == 3.0
        assert config.captcha_api_keys == {'2captcha': 'k'}
        assert config.capability_overrides == {'submit-form': 'assisted'}
        assert config.log_level == 'DEBUG'

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("{")
        config = UnifiedConfig(base_dir=tmp_path)
        assert load_config_from_file(config, path) is False
        assert config.listen_port == 11445

    def test_derived_paths(self, tmp_path):
        config = UnifiedConfig(base_dir=tmp_path)
        assert config.state_file == tmp_path / "data" / "state.json"
        assert config.key_file == tmp_path / "data" / "vault.key"
        assert config.risk_weights_file == tmp_path / "config" / "risk_weights.json"
