"""WebSocket transport session to the local print server.

One TransportSession owns at most one socket at a time. It exposes open/close/send,
hands every inbound frame to registered message handlers in arrival order, and
publishes lifecycle events (opened, closed, errored) on a bubus EventBus so that
watchdogs can react to them without the session knowing about them.
"""

import asyncio
import json
import logging
from collections.abc import Callable
from typing import Any

import aiohttp
from bubus import EventBus

from printer_connection.config import CONFIG
from printer_connection.exceptions import ConnectTimeout, NotConnectedError, PrinterConnectionError, TransportError
from printer_connection.transport.events import SessionClosedEvent, SessionErrorEvent, SessionOpenedEvent
from printer_connection.transport.views import ConnectionState

logger = logging.getLogger(__name__)

MessageHandler = Callable[[str | bytes], None]
DisconnectHandler = Callable[[TransportError], None]

MAX_MESSAGE_SIZE = 16 * 1024 * 1024


class TransportSession:
	"""Single persistent WebSocket connection to the print server."""

	def __init__(
		self,
		url: str | None = None,
		*,
		connect_timeout: float | None = None,
		heartbeat: float | None = 30.0,
		event_bus: EventBus | None = None,
	):
		self.url = url or CONFIG.PRINTER_CONNECTION_URL
		self.connect_timeout = connect_timeout if connect_timeout is not None else CONFIG.PRINTER_CONNECTION_CONNECT_TIMEOUT
		self.heartbeat = heartbeat
		self.event_bus = event_bus or EventBus()

		self._state = ConnectionState.DISCONNECTED
		self._http: aiohttp.ClientSession | None = None
		self._ws: aiohttp.ClientWebSocketResponse | None = None
		self._reader_task: asyncio.Task | None = None
		# held for the whole of open(), including the teardown of a replaced socket
		self._open_lock = asyncio.Lock()
		# bumped by every close so that an open() or reader from an older socket can tell it was superseded
		self._generation = 0
		self._message_handlers: list[MessageHandler] = []
		self._disconnect_handlers: list[DisconnectHandler] = []

	def __repr__(self) -> str:
		return f'<TransportSession {self.url} {self._state.value}>'

	# ── State ────────────────────────────────────────────────────────────────

	@property
	def state(self) -> ConnectionState:
		return self._state

	@property
	def is_connected(self) -> bool:
		return self._state is ConnectionState.CONNECTED

	@property
	def is_connecting(self) -> bool:
		"""True while an open() is in flight, including while it tears down the socket it replaces."""
		return self._state is ConnectionState.CONNECTING or self._open_lock.locked()

	@property
	def has_socket(self) -> bool:
		return self._ws is not None

	def _set_state(self, state: ConnectionState) -> None:
		"""The only place the connection state changes."""
		if state is self._state:
			return
		if state is ConnectionState.CONNECTED:
			assert self._ws is not None and not self._ws.closed, 'CONNECTED requires an open socket'
		logger.debug(f'{self.url}: {self._state.value} -> {state.value}')
		self._state = state

	# ── Subscriptions ────────────────────────────────────────────────────────

	def add_message_handler(self, handler: MessageHandler) -> None:
		"""Call ``handler`` with every inbound text (str) or binary (bytes) frame, in arrival order."""
		self._message_handlers.append(handler)

	def remove_message_handler(self, handler: MessageHandler) -> None:
		if handler in self._message_handlers:
			self._message_handlers.remove(handler)

	def add_disconnect_handler(self, handler: DisconnectHandler) -> None:
		"""Call ``handler`` synchronously whenever an open socket goes away, expected or not."""
		self._disconnect_handlers.append(handler)

	# ── Lifecycle ────────────────────────────────────────────────────────────

	async def open(self) -> None:
		"""Connect to the print server.

		A call made while another open() is in flight returns immediately without
		doing anything. Any socket still held from before is closed first.

		Raises:
			ConnectTimeout: No handshake within ``connect_timeout`` seconds.
			TransportError: The socket failed before the handshake completed.
		"""
		if self.is_connecting:
			logger.debug(f'{self.url}: open() ignored, a connection attempt is already in flight')
			return
		# acquiring a free lock does not yield, so no second open() can slip past the check above
		async with self._open_lock:
			await self._open()

	async def _open(self) -> None:
		if self._ws is not None or self._http is not None:
			logger.debug(f'{self.url}: replacing existing socket')
			await self._shutdown(expected=True, reason='Replaced by a new connection')

		generation = self._generation
		self._set_state(ConnectionState.CONNECTING)
		http = aiohttp.ClientSession()
		self._http = http
		logger.debug(f'Connecting to print server at {self.url} (timeout={self.connect_timeout}s)')

		try:
			ws = await asyncio.wait_for(
				http.ws_connect(self.url, heartbeat=self.heartbeat, max_msg_size=MAX_MESSAGE_SIZE),
				timeout=self.connect_timeout,
			)
		except asyncio.TimeoutError:
			await self._fail_open(
				generation,
				http,
				ConnectTimeout(
					f'Timed out connecting to the print server after {self.connect_timeout:.1f}s',
					{'url': self.url, 'timeout': self.connect_timeout},
				),
			)
			return
		except (aiohttp.ClientError, OSError) as e:
			await self._fail_open(
				generation,
				http,
				TransportError(f'Could not connect to the print server: {e}', {'url': self.url}),
			)
			return
		except asyncio.CancelledError:
			if generation == self._generation:
				await self._release()
				self._set_state(ConnectionState.DISCONNECTED)
			else:
				await http.close()
			raise

		if generation != self._generation:
			# close() ran while the handshake was in progress
			await ws.close()
			await http.close()
			raise TransportError('Connection closed while connecting to the print server', {'url': self.url})

		self._ws = ws
		self._set_state(ConnectionState.CONNECTED)
		self._reader_task = asyncio.create_task(self._read_loop(ws, generation), name=f'printer-connection-reader-{generation}')
		logger.info(f'Connected to print server at {self.url}')
		self.event_bus.dispatch(SessionOpenedEvent(url=self.url))

	async def close(self) -> None:
		"""Release the socket. Always ends DISCONNECTED; safe to call repeatedly."""
		await self._shutdown(expected=True, reason='Closed by client')

	async def _shutdown(self, expected: bool, reason: str) -> None:
		was_active = self._state is not ConnectionState.DISCONNECTED or self._ws is not None
		self._generation += 1
		await self._release()
		self._set_state(ConnectionState.DISCONNECTED)
		if not was_active:
			return
		logger.info(f'Disconnected from print server ({reason})')
		self._notify_disconnect(TransportError(f'Connection to the print server closed: {reason}'))
		self.event_bus.dispatch(SessionClosedEvent(url=self.url, expected=expected, reason=reason))

	async def _fail_open(self, generation: int, http: aiohttp.ClientSession, error: PrinterConnectionError) -> None:
		if generation != self._generation:
			# superseded by close(); that close already reported the state change
			await http.close()
			raise error

		await self._release()
		self._set_state(ConnectionState.DISCONNECTED)
		logger.warning(f'{error.message} ({self.url})')
		self.event_bus.dispatch(
			SessionErrorEvent(url=self.url, error_type=type(error).__name__, message=error.message, details=error.details)
		)
		# a failed connect counts as an unexpected close so the reconnection policy keeps going
		self.event_bus.dispatch(SessionClosedEvent(url=self.url, expected=False, reason=error.message))
		raise error

	async def _release(self) -> None:
		"""Drop the socket, the HTTP session and the reader task, whatever their state."""
		reader, self._reader_task = self._reader_task, None
		ws, self._ws = self._ws, None
		http, self._http = self._http, None

		if reader is not None and reader is not asyncio.current_task() and not reader.done():
			reader.cancel()
			try:
				await reader
			except asyncio.CancelledError:
				pass
		if ws is not None and not ws.closed:
			try:
				await ws.close()
			except (aiohttp.ClientError, OSError) as e:
				logger.debug(f'Error closing websocket: {e}')
		if http is not None and not http.closed:
			await http.close()

	# ── Inbound ──────────────────────────────────────────────────────────────

	async def _read_loop(self, ws: aiohttp.ClientWebSocketResponse, generation: int) -> None:
		reason: str | None = None
		try:
			async for msg in ws:
				if msg.type in (aiohttp.WSMsgType.TEXT, aiohttp.WSMsgType.BINARY):
					self._deliver(msg.data)
				elif msg.type == aiohttp.WSMsgType.ERROR:
					error = ws.exception()
					reason = f'WebSocket error: {error}'
					self.event_bus.dispatch(
						SessionErrorEvent(
							url=self.url,
							error_type=type(error).__name__ if error is not None else 'WebSocketError',
							message=str(error) if error is not None else 'Unknown WebSocket error',
						)
					)
					break
		except asyncio.CancelledError:
			raise
		except (aiohttp.ClientError, OSError) as e:
			reason = f'{type(e).__name__}: {e}'
			self.event_bus.dispatch(SessionErrorEvent(url=self.url, error_type=type(e).__name__, message=str(e)))

		if generation != self._generation:
			return
		if reason is None:
			reason = f'Server closed the connection (code={ws.close_code})'
		await self._handle_unexpected_close(reason)

	def _deliver(self, data: str | bytes) -> None:
		for handler in list(self._message_handlers):
			try:
				handler(data)
			except Exception as e:
				logger.exception(f'Message handler {handler!r} failed: {e}')

	async def _handle_unexpected_close(self, reason: str) -> None:
		self._generation += 1
		await self._release()
		self._set_state(ConnectionState.DISCONNECTED)
		logger.warning(f'Lost connection to print server at {self.url}: {reason}')
		self._notify_disconnect(TransportError(f'Connection to the print server lost: {reason}'))
		self.event_bus.dispatch(SessionClosedEvent(url=self.url, expected=False, reason=reason))

	def _notify_disconnect(self, error: TransportError) -> None:
		for handler in list(self._disconnect_handlers):
			try:
				handler(error)
			except Exception as e:
				logger.exception(f'Disconnect handler {handler!r} failed: {e}')

	# ── Outbound ─────────────────────────────────────────────────────────────

	async def send_text(self, text: str) -> None:
		"""Send one text frame.

		Raises:
			NotConnectedError: The session is not CONNECTED.
			TransportError: The socket failed while sending.
		"""
		ws = self._ws
		if not self.is_connected or ws is None or ws.closed:
			raise NotConnectedError()
		try:
			await ws.send_str(text)
		except (aiohttp.ClientError, ConnectionResetError, RuntimeError) as e:
			raise TransportError(f'Failed to send to the print server: {e}', {'url': self.url}) from e

	async def send_json(self, data: dict[str, Any]) -> None:
		await self.send_text(json.dumps(data))
