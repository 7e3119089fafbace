"""
Tests for RequestCorrelator: one outstanding request per session, replies matched in order.

Usage:
	pytest tests/ci/test_correlator.py -v -s
"""

import asyncio
import json
from unittest.mock import patch

import pytest

from printer_connection.exceptions import (
	CallInProgressError,
	NotConnectedError,
	ProtocolError,
	RemoteError,
	ResponseTimeout,
	TransportError,
)
from printer_connection.rpc.service import RequestCorrelator
from printer_connection.rpc.views import CheckStatusRequest, GetPrintersRequest, PrintRequest, RequestKind
from tests.ci.fake_daemon import PRINTERS, default_reply, unused_url, wait_until


@pytest.fixture
async def correlator(daemon, make_session):
	session = make_session(daemon.url)
	await session.open()
	return RequestCorrelator(session, response_timeout=2.0)


class TestWireMessages:
	def test_request_wire_shapes(self):
		assert CheckStatusRequest().to_wire() == {'type': 'checkStatus'}
		assert GetPrintersRequest().to_wire() == {'type': 'getPrinters'}
		assert PrintRequest(image='data:image/png;base64,AAAA', printer='Zebra').to_wire() == {
			'type': 'print',
			'image': 'data:image/png;base64,AAAA',
			'printer': 'Zebra',
		}

	def test_print_request_repr_hides_payload(self):
		request = PrintRequest(image='data:image/png;base64,' + 'A' * 5000, printer='Zebra')
		assert 'AAAA' not in repr(request)
		assert request.kind is RequestKind.PRINT


class TestCall:
	@pytest.mark.asyncio
	async def test_success_resolves_with_response(self, daemon, correlator):
		response = await correlator.call(CheckStatusRequest())

		assert response.status == 'success'
		assert response.system is not None
		assert response.system.printers_count == 2
		assert daemon.received == [{'type': 'checkStatus'}]
		assert correlator.pending is None
		assert not correlator.busy

	@pytest.mark.asyncio
	async def test_printers_are_passed_through(self, correlator):
		response = await correlator.call(GetPrintersRequest())
		assert response.printers == PRINTERS

	@pytest.mark.asyncio
	async def test_error_status_raises_remote_error(self, daemon, correlator):
		daemon.handler = lambda request: {'status': 'error', 'message': 'Printer offline'}

		with pytest.raises(RemoteError, match='Printer offline') as exc_info:
			await correlator.call(CheckStatusRequest())

		assert exc_info.value.details['status'] == 'error'
		assert correlator.pending is None

	@pytest.mark.asyncio
	async def test_error_status_without_message(self, daemon, correlator):
		daemon.handler = lambda request: {'status': 'busy'}

		with pytest.raises(RemoteError, match="status 'busy'"):
			await correlator.call(CheckStatusRequest())

	@pytest.mark.asyncio
	@pytest.mark.parametrize(
		'reply',
		[
			'not json{',
			'[1, 2, 3]',
			b'\xff\xfe\x00',
			'{"status": "success", "system": {"printersCount": "many"}}',
		],
	)
	async def test_malformed_reply_raises_protocol_error(self, daemon, correlator, reply):
		daemon.handler = lambda request: reply

		with pytest.raises(ProtocolError):
			await correlator.call(CheckStatusRequest())

	@pytest.mark.asyncio
	async def test_extra_fields_are_kept(self, daemon, correlator):
		daemon.handler = lambda request: {'status': 'success', 'system': {'printersCount': 1, 'hostname': 'label-pc'}, 'jobId': 7}

		response = await correlator.call(CheckStatusRequest())

		assert response.system.model_extra == {'hostname': 'label-pc'}
		assert response.model_extra == {'jobId': 7}

	@pytest.mark.asyncio
	async def test_session_survives_error_replies(self, daemon, correlator):
		daemon.handler = lambda request: 'garbage'
		with pytest.raises(ProtocolError):
			await correlator.call(CheckStatusRequest())

		daemon.handler = default_reply
		response = await correlator.call(CheckStatusRequest())
		assert response.status == 'success'
		assert correlator.session.is_connected

	@pytest.mark.asyncio
	async def test_call_without_connection_raises(self, make_session):
		session = make_session(unused_url())
		correlator = RequestCorrelator(session, response_timeout=1.0)

		with pytest.raises(NotConnectedError):
			await correlator.call(CheckStatusRequest())

	@pytest.mark.asyncio
	async def test_unsolicited_message_is_ignored(self, correlator):
		correlator._handle_incoming('{"status": "success", "event": "paperLow"}')

		response = await correlator.call(GetPrintersRequest())
		assert response.printers == PRINTERS

	@pytest.mark.asyncio
	async def test_handlers_do_not_accumulate(self, correlator):
		for _ in range(5):
			await correlator.call(CheckStatusRequest())

		assert len(correlator.session._message_handlers) == 1
		assert correlator.pending is None


class TestExclusivity:
	@pytest.mark.asyncio
	async def test_overlapping_calls_are_serialized(self, concurrent_daemon, make_session):
		session = make_session(concurrent_daemon.url)
		await session.open()
		correlator = RequestCorrelator(session, response_timeout=2.0)
		# a slow first reply would arrive after a fast second one if both were outstanding
		concurrent_daemon.reply_delay = lambda request: 0.2 if request['type'] == 'checkStatus' else 0.0

		status, printers = await asyncio.gather(
			correlator.call(CheckStatusRequest()),
			correlator.call(GetPrintersRequest()),
		)

		assert status.printers is None
		assert status.system.printers_count == 2
		assert printers.printers == PRINTERS
		assert concurrent_daemon.received_types() == ['checkStatus', 'getPrinters']
		assert concurrent_daemon.max_outstanding == 1

	@pytest.mark.asyncio
	async def test_overlapping_call_rejected_when_not_waiting(self, daemon, correlator):
		daemon.reply_delay = 0.2
		first = asyncio.create_task(correlator.call(CheckStatusRequest()))
		assert await wait_until(lambda: correlator.busy)

		with pytest.raises(CallInProgressError):
			await correlator.call(GetPrintersRequest(), wait=False)

		response = await first
		assert response.system is not None
		assert daemon.received_types() == ['checkStatus']

	@pytest.mark.asyncio
	async def test_non_waiting_call_runs_when_idle(self, correlator):
		response = await correlator.call(CheckStatusRequest(), wait=False)
		assert response.status == 'success'


class TestTimeoutsAndDisconnects:
	@pytest.mark.asyncio
	async def test_late_reply_is_not_mistaken_for_next_response(self, daemon, correlator):
		daemon.reply_delay = lambda request: 0.3 if request['type'] == 'checkStatus' else 0.0

		with pytest.raises(ResponseTimeout):
			await correlator.call(CheckStatusRequest(), timeout=0.1)
		assert correlator.abandoned == 1
		assert correlator.pending is None

		# the late checkStatus reply arrives first and must be dropped
		response = await correlator.call(GetPrintersRequest())

		assert response.printers == PRINTERS
		assert correlator.abandoned == 0

	@pytest.mark.asyncio
	@pytest.mark.parametrize('cancelled_first', [True, False])
	async def test_reply_racing_the_timeout_is_not_counted_as_late(self, daemon, correlator, cancelled_first):
		# the server never answers checkStatus by itself; the reply is fed in as the wait times out
		daemon.handler = lambda request: None if request['type'] == 'checkStatus' else default_reply(request)
		reply = json.dumps(default_reply({'type': 'checkStatus'}))

		real_wait_for = asyncio.wait_for

		async def wait_for_with_reply_at_deadline(future, timeout):
			pending = correlator.pending
			if pending is None or future is not pending.future:
				return await real_wait_for(future, timeout)
			if cancelled_first:
				future.cancel()
			correlator._handle_incoming(reply)
			if not future.done():
				future.cancel()
			raise asyncio.TimeoutError

		with patch('printer_connection.rpc.service.asyncio.wait_for', wait_for_with_reply_at_deadline):
			with pytest.raises(ResponseTimeout):
				await correlator.call(CheckStatusRequest())

		# the reply was consumed, so nothing is owed and the next reply belongs to the next call
		assert correlator.abandoned == 0
		assert correlator.pending is None
		response = await correlator.call(GetPrintersRequest(), timeout=1.0)
		assert response.printers == PRINTERS

	@pytest.mark.asyncio
	async def test_missing_reply_times_out(self, daemon, correlator):
		daemon.handler = lambda request: None

		with pytest.raises(ResponseTimeout) as exc_info:
			await correlator.call(CheckStatusRequest(), timeout=0.1)

		assert exc_info.value.details == {'kind': 'checkStatus', 'timeout': 0.1}

	@pytest.mark.asyncio
	async def test_disconnect_fails_pending_call(self, daemon, correlator):
		daemon.handler = lambda request: None
		call = asyncio.create_task(correlator.call(CheckStatusRequest(), timeout=5.0))
		assert await wait_until(lambda: len(daemon.received) == 1)

		await daemon.drop_connections()

		with pytest.raises(TransportError):
			await asyncio.wait_for(call, timeout=2.0)
		assert correlator.pending is None
		assert not correlator.busy

	@pytest.mark.asyncio
	async def test_disconnect_clears_abandoned_replies(self, daemon, correlator):
		daemon.handler = lambda request: None
		with pytest.raises(ResponseTimeout):
			await correlator.call(CheckStatusRequest(), timeout=0.1)
		assert correlator.abandoned == 1

		await correlator.session.close()

		assert correlator.abandoned == 0
