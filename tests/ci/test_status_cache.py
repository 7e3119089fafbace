"""
Tests for the status cache and the snapshot models.

Usage:
	pytest tests/ci/test_status_cache.py -v -s
"""

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from printer_connection.status.service import StatusCache
from printer_connection.status.views import SystemSnapshot, SystemStatus
from tests.ci.fake_daemon import SYSTEM


class TestSystemSnapshot:
	def test_reads_wire_field_names(self):
		snapshot = SystemSnapshot.model_validate(SYSTEM)

		assert snapshot.ready is True
		assert snapshot.printers_count == 2
		assert snapshot.is_connected is True
		assert snapshot.last_ping == '2024-05-01T10:00:00Z'
		assert snapshot.network_interfaces == SYSTEM['networkInterfaces']

	def test_to_wire_uses_wire_names_and_keeps_extras(self):
		snapshot = SystemSnapshot.model_validate({'printersCount': 1, 'hostname': 'label-pc'})
		wire = snapshot.to_wire()

		assert wire['printersCount'] == 1
		assert wire['hostname'] == 'label-pc'
		assert 'printers_count' not in wire

	def test_defaults_describe_an_unknown_server(self):
		snapshot = SystemSnapshot()
		assert snapshot.ready is False
		assert snapshot.printers_count == 0
		assert snapshot.network_interfaces == []
		assert snapshot.error is None

	def test_snapshot_is_immutable(self):
		snapshot = SystemSnapshot(printers_count=2)
		with pytest.raises(ValidationError):
			snapshot.printers_count = 3


class TestStatusCache:
	def test_initial_read(self):
		cache = StatusCache()
		status = cache.read(is_connected=False)

		assert isinstance(status, SystemStatus)
		assert status.ready is False
		assert status.last_update is None
		assert cache.updated_at is None

	def test_update_replaces_snapshot(self):
		cache = StatusCache()
		first = SystemSnapshot.model_validate(SYSTEM)
		second = SystemSnapshot.model_validate({**SYSTEM, 'printersCount': 5})

		cache.update(first)
		assert cache.snapshot is first
		cache.update(second)

		assert cache.snapshot is second
		assert first.printers_count == 2
		assert cache.read(is_connected=True).printers_count == 5

	def test_read_merges_live_connection_state(self):
		cache = StatusCache()
		cache.update(SystemSnapshot.model_validate(SYSTEM))

		status = cache.read(is_connected=False)

		# the server said it is connected, but the live session is not
		assert status.is_connected is False
		assert status.ready is True
		assert status.last_update == cache.updated_at
		assert status.last_update.utcoffset().total_seconds() == 0

	def test_read_keeps_extra_fields(self):
		cache = StatusCache()
		cache.update(SystemSnapshot.model_validate({**SYSTEM, 'hostname': 'label-pc'}))

		status = cache.read(is_connected=True)

		assert status.model_extra == {'hostname': 'label-pc'}
		assert status.model_dump(by_alias=True)['lastUpdate'] is not None

	def test_mark_disconnected_keeps_last_known_values(self):
		cache = StatusCache()
		original = SystemSnapshot.model_validate(SYSTEM)
		cache.update(original)
		before = cache.updated_at

		cache.mark_disconnected(error='Connection refused')

		snapshot = cache.snapshot
		assert snapshot is not original
		assert snapshot.ready is False
		assert snapshot.is_connected is False
		assert snapshot.error == 'Connection refused'
		assert snapshot.printers_count == 2
		assert original.ready is True
		assert cache.updated_at >= before

	def test_mark_disconnected_without_error_keeps_previous_error(self):
		cache = StatusCache(SystemSnapshot(error='Paper low'))
		cache.mark_disconnected()
		assert cache.snapshot.error == 'Paper low'

	def test_updated_at_is_recent(self):
		cache = StatusCache()
		cache.update(SystemSnapshot())
		assert (datetime.now(timezone.utc) - cache.updated_at).total_seconds() < 5
