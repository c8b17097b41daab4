#!/usr/bin/env python3
"""
Tests for the chain-hashed audit log.

Tests:
- Append, ids, sequence numbers and hash chaining
- Disabled logging is a no-op unless forced
- Export shape and integrity report
- Tamper detection on edited, dropped and reordered events
- clear(confirmed) semantics, including the persisted copy
"""

import re

import pytest

from echonate.core.audit.log import AuditLog
from echonate.core.constants import GENESIS_HASH, KEY_AUDIT_LOG
from echonate.core.persistence.store import MemoryStore


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def log(store):
    audit = AuditLog(store)
    for i in range(4):
        audit.record('update-config', 'performed', {'n': i}, mode='standard', risk='LOW')
    return audit


class TestAppend:

    def test_event_fields(self, store):
        audit = AuditLog(store)
        event = audit.record('change-mode', 'performed', {'to': 'research'},
                             mode='standard', risk='LOW')
        assert re.fullmatch(r"evt_[0-9a-f]{32}", event.id)
        assert event.sequence == 1
        assert event.previous_hash == GENESIS_HASH
        assert len(event.chain_hash) == 64
        assert event.details == {'to': 'research'}

    def test_chain_links(self, log):
        events = log.events
        assert [e.sequence for e in events] == [1, 2, 3, 4]
        for prev, cur in zip(events, events[1:]):
            assert cur.previous_hash == prev.chain_hash
        assert log.verify_chain() == (True, None)

    def test_persisted_after_every_append(self, store, log):
        persisted = store.get([KEY_AUDIT_LOG])[KEY_AUDIT_LOG]
        assert len(persisted) == 4
        assert persisted[-1]['chain_hash'] == log.events[-1].chain_hash

    def test_memory_storage_skips_persistence(self, store):
        audit = AuditLog(store)
        audit.persist = False
        audit.record('accept-terms', 'performed')
        assert store.get([KEY_AUDIT_LOG]) == {}
        assert len(audit) == 1

    def test_non_json_details_are_normalized(self, store):
        audit = AuditLog(store)
        event = audit.record('submit-form', 'performed', {'fields': ['a', 'b'],
                                                          'obj': object()})
        assert isinstance(event.details['obj'], str)
        assert audit.verify_chain() == (True, None)

    def test_events_view_is_a_copy(self, log):
        events = log.events
        assert isinstance(events, tuple)
        with pytest.raises(AttributeError):
            events[0].outcome = 'denied'

    def test_persist_failure_does_not_raise(self):
        class BrokenStore(MemoryStore):
            def set(self, key, value):
                raise OSError("disk full")

        audit = AuditLog(BrokenStore())
        event = audit.record('export-audit', 'performed')
        assert event is not None
        assert len(audit) == 1


class TestDisabled:

    def test_disabled_is_noop(self, store):
        audit = AuditLog(store)
        audit.enabled = False
        assert audit.record('change-mode', 'performed') is None
        assert len(audit) == 0
        assert store.write_count == 0

    def test_forced_record_when_disabled(self, store):
        audit = AuditLog(store)
        audit.enabled = False
        event = audit.record('update-config', 'performed', {'key': 'action_logging'}, force=True)
        assert event is not None
        assert len(audit) == 1


class TestExport:

    def test_export_shape(self, log):
        export = log.export()
        assert export['format'] == 'JSON'
        assert export['event_count'] == 4
        assert export['integrity'] == {'verified': True, 'first_broken_sequence': None}
        assert [e['sequence'] for e in export['events']] == [1, 2, 3, 4]
        assert 'exported_at' in export


class TestTamperDetection:

    def _reload(self, store, mutate):
        raw = store.get([KEY_AUDIT_LOG])[KEY_AUDIT_LOG]
        mutate(raw)
        fresh = AuditLog(MemoryStore())
        ok = fresh.load(raw)
        return ok, fresh

    def test_clean_reload_verifies(self, store, log):
        ok, fresh = self._reload(store, lambda raw: None)
        assert ok
        assert fresh.tampered_at is None
        nxt = fresh.record('accept-terms', 'performed')
        assert nxt.sequence == 5
        assert nxt.previous_hash == log.events[-1].chain_hash

    def test_edited_details_detected(self, store, log):
        def edit(raw):
            raw[2]['details']['n'] = 99
        ok, fresh = self._reload(store, edit)
        assert not ok
        assert fresh.tampered_at == 3

    def test_edited_outcome_detected(self, store, log):
        def edit(raw):
            raw[1]['outcome'] = 'denied'
        ok, fresh = self._reload(store, edit)
        assert not ok
        assert fresh.tampered_at == 2

    def test_dropped_event_detected(self, store, log):
        ok, fresh = self._reload(store, lambda raw: raw.pop(1))
        assert not ok
        assert fresh.tampered_at == 3

    def test_reordered_events_detected(self, store, log):
        def swap(raw):
            raw[1], raw[2] = raw[2], raw[1]
        ok, fresh = self._reload(store, swap)
        assert not ok

    def test_export_reports_broken_chain(self, store, log):
        def edit(raw):
            raw[0]['action'] = 'export-audit'
        _, fresh = self._reload(store, edit)
        assert fresh.export()['integrity'] == {'verified': False, 'first_broken_sequence': 1}


class TestClear:

    @pytest.mark.parametrize("confirmed", [False, None, 1, "true", "yes"])
    def test_clear_without_true_is_noop(self, store, log, confirmed):
        before = [e.chain_hash for e in log.events]
        writes = store.write_count
        assert log.clear(confirmed) is False
        assert [e.chain_hash for e in log.events] == before
        assert store.write_count == writes

    def test_confirmed_clear_wipes_memory_and_store(self, store, log):
        assert log.clear(True) is True
        assert len(log) == 0
        assert store.get([KEY_AUDIT_LOG])[KEY_AUDIT_LOG] == []
        event = log.record('change-mode', 'performed')
        assert event.sequence == 1
        assert event.previous_hash == GENESIS_HASH
