"""Request/response correlation over the print server socket.

The print server protocol has no request ids: the reply to a request is simply the
next message on the socket. Correct matching therefore depends on never having more
than one request outstanding, which RequestCorrelator enforces with a lock around a
single pending slot.
"""

import asyncio
import json
import logging

from pydantic import ValidationError

from printer_connection.config import CONFIG
from printer_connection.exceptions import (
	CallInProgressError,
	NotConnectedError,
	PrinterConnectionError,
	ProtocolError,
	RemoteError,
	ResponseTimeout,
	TransportError,
)
from printer_connection.rpc.views import DaemonRequest, DaemonResponse, PendingRequest, RequestKind
from printer_connection.transport.session import TransportSession

logger = logging.getLogger(__name__)


class RequestCorrelator:
	"""Matches each outbound request to exactly one inbound response.

	Callers that overlap are serialized: call(wait=True) queues behind the request in
	flight, call(wait=False) raises CallInProgressError instead.
	"""

	def __init__(self, session: TransportSession, response_timeout: float | None = None):
		self.session = session
		self.response_timeout = (
			response_timeout if response_timeout is not None else CONFIG.PRINTER_CONNECTION_RESPONSE_TIMEOUT
		)
		self._lock = asyncio.Lock()
		self._pending: PendingRequest | None = None
		# replies still owed for requests whose callers timed out; dropped on arrival
		self._abandoned = 0

		session.add_message_handler(self._handle_incoming)
		session.add_disconnect_handler(self._handle_disconnect)

	@property
	def busy(self) -> bool:
		return self._lock.locked()

	@property
	def pending(self) -> PendingRequest | None:
		return self._pending

	@property
	def abandoned(self) -> int:
		return self._abandoned

	async def call(self, request: DaemonRequest, *, wait: bool = True, timeout: float | None = None) -> DaemonResponse:
		"""Send ``request`` and return the print server's successful reply.

		Raises:
			CallInProgressError: ``wait`` is False and another request is in flight.
			NotConnectedError: The session is not connected.
			TransportError: The socket failed or closed before the reply arrived.
			ResponseTimeout: No reply within ``timeout`` (default ``response_timeout``) seconds.
			RemoteError: The print server replied with a non-success status.
			ProtocolError: The reply could not be decoded.
		"""
		if not wait and self._lock.locked():
			raise CallInProgressError(
				f'Cannot send {request.kind.value}: another request is waiting for a response',
				{'kind': request.kind.value},
			)
		async with self._lock:
			return await self._call_locked(request, timeout if timeout is not None else self.response_timeout)

	async def _call_locked(self, request: DaemonRequest, timeout: float) -> DaemonResponse:
		if not self.session.is_connected:
			raise NotConnectedError()

		pending = PendingRequest(kind=request.kind, future=asyncio.get_running_loop().create_future())
		self._pending = pending
		logger.debug(f'→ {request.kind.value}')
		try:
			await self.session.send_json(request.to_wire())
			response = await asyncio.wait_for(pending.future, timeout=timeout)
		except asyncio.TimeoutError:
			if self.session.is_connected and not pending.answered:
				# the reply may still come; it must not be mistaken for the next request's
				self._abandoned += 1
			raise ResponseTimeout(
				f'No response from the print server to {request.kind.value} within {timeout:.1f}s',
				{'kind': request.kind.value, 'timeout': timeout},
			)
		finally:
			if self._pending is pending:
				self._pending = None

		logger.debug(f'← {request.kind.value}: {response.status}')
		return response

	def _handle_incoming(self, data: str | bytes) -> None:
		if self._abandoned:
			self._abandoned -= 1
			logger.debug('Discarding late response to a request that already timed out')
			return

		pending, self._pending = self._pending, None
		if pending is None:
			logger.debug(f'Ignoring unsolicited message from print server: {_preview(data)}')
			return
		pending.answered = True
		if pending.future.done():
			# the caller timed out while this reply was on its way
			logger.debug(f'Discarding response to {pending.kind.value} that arrived as its caller timed out')
			return

		try:
			response = self._parse(data, pending.kind)
		except PrinterConnectionError as e:
			pending.future.set_exception(e)
		else:
			pending.future.set_result(response)

	def _handle_disconnect(self, error: TransportError) -> None:
		# a new socket owes us nothing
		self._abandoned = 0
		pending, self._pending = self._pending, None
		if pending is not None and not pending.future.done():
			pending.future.set_exception(error)

	@staticmethod
	def _parse(data: str | bytes, kind: RequestKind) -> DaemonResponse:
		try:
			payload = json.loads(data)
		except (json.JSONDecodeError, UnicodeDecodeError) as e:
			raise ProtocolError(
				f'Print server sent an invalid response to {kind.value}: {e}', {'kind': kind.value, 'data': _preview(data)}
			)

		if not isinstance(payload, dict):
			raise ProtocolError(
				f'Print server response to {kind.value} is not a JSON object', {'kind': kind.value, 'data': _preview(data)}
			)

		status = payload.get('status')
		if status != 'success':
			message = payload.get('message') or f'Print server returned status {status!r}'
			raise RemoteError(str(message), {'kind': kind.value, 'status': status})

		try:
			return DaemonResponse.model_validate(payload)
		except ValidationError as e:
			raise ProtocolError(
				f'Print server sent a malformed response to {kind.value}: {e.error_count()} invalid field(s)',
				{'kind': kind.value, 'errors': e.errors(include_url=False)},
			)


def _preview(data: str | bytes, limit: int = 200) -> str:
	text = data if isinstance(data, str) else repr(data)
	return text if len(text) <= limit else f'{text[:limit]}...'
