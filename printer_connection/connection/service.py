"""
PrinterConnection - client for the local print server.

Keeps one WebSocket session to the print server alive across server restarts and
short network outages, and exposes the server's operations as coroutines.

Usage:
	async with PrinterConnection() as printer:
		printers = await printer.get_printers()
		message = await printer.print_image('label.png', printers[0]['name'])

	# or without the context manager
	printer = PrinterConnection('ws://localhost:8080')
	if await printer.initialize():
		status = printer.get_system_status()
	await printer.close()
"""

import asyncio
import logging
from typing import Any

from bubus import EventBus

from printer_connection.config import CONFIG
from printer_connection.exceptions import (
	ConnectTimeout,
	PrinterConnectionError,
	RemoteError,
	RetryBudgetExhausted,
)
from printer_connection.rpc.service import RequestCorrelator
from printer_connection.rpc.views import CheckStatusRequest, GetPrintersRequest, PrintRequest
from printer_connection.status.service import StatusCache
from printer_connection.status.views import SystemSnapshot, SystemStatus
from printer_connection.transport.session import TransportSession
from printer_connection.transport.views import ConnectionState, RetryBudget
from printer_connection.transport.watchdogs.reconnect_watchdog import ReconnectWatchdog
from printer_connection.transport.watchdogs.status_watchdog import StatusWatchdog
from printer_connection.utils import ImageSource, encode_image_data_uri

logger = logging.getLogger(__name__)

CONNECTION_CHECK_INTERVAL = 0.1


class PrinterConnection:
	"""
	Connector facade for the print server.

	Owns the transport session, the request correlator, the status cache and the two
	watchdogs (reconnection policy and status poll). Every argument left as None is
	taken from the PRINTER_CONNECTION_* environment settings.

	Attributes:
		session: The underlying TransportSession
		correlator: Serializes requests and matches them to responses
		status_cache: Latest system snapshot reported by the print server
	"""

	def __init__(
		self,
		url: str | None = None,
		*,
		connect_timeout: float | None = None,
		response_timeout: float | None = None,
		status_interval: float | None = None,
		max_reconnect_attempts: int | None = None,
		reconnect_delay: float | None = None,
		reconnect_max_delay: float | None = None,
		event_bus: EventBus | None = None,
	):
		self.session = TransportSession(url, connect_timeout=connect_timeout, event_bus=event_bus)
		self.correlator = RequestCorrelator(self.session, response_timeout=response_timeout)
		self.status_cache = StatusCache()

		max_attempts = (
			max_reconnect_attempts
			if max_reconnect_attempts is not None
			else CONFIG.PRINTER_CONNECTION_MAX_RECONNECT_ATTEMPTS
		)
		self.reconnect_watchdog = ReconnectWatchdog(
			session=self.session,
			retry_budget=RetryBudget(max_attempts=max_attempts),
			base_delay=reconnect_delay if reconnect_delay is not None else CONFIG.PRINTER_CONNECTION_RECONNECT_DELAY,
			max_delay=reconnect_max_delay
			if reconnect_max_delay is not None
			else CONFIG.PRINTER_CONNECTION_RECONNECT_MAX_DELAY,
		)
		self.status_watchdog = StatusWatchdog(
			session=self.session,
			status_cache=self.status_cache,
			poll_status=self._poll_status,
			interval=status_interval if status_interval is not None else CONFIG.PRINTER_CONNECTION_STATUS_INTERVAL,
		)
		self.reconnect_watchdog.attach_to_session()
		self.status_watchdog.attach_to_session()

	def __repr__(self) -> str:
		return f'<PrinterConnection {self.url} {self.state.value}>'

	async def __aenter__(self) -> 'PrinterConnection':
		await self.initialize()
		return self

	async def __aexit__(self, *args) -> None:
		await self.close()
		await self.event_bus.stop(clear=True, timeout=5)

	@property
	def url(self) -> str:
		return self.session.url

	@property
	def event_bus(self) -> EventBus:
		return self.session.event_bus

	@property
	def state(self) -> ConnectionState:
		return self.session.state

	@property
	def is_connected(self) -> bool:
		return self.session.is_connected

	@property
	def retry_budget(self) -> RetryBudget:
		return self.reconnect_watchdog.retry_budget

	async def initialize(self) -> bool:
		"""
		Connect to the print server and start the periodic status check.

		Also refills the reconnection budget, so this is the way to recover after
		automatic reconnection gave up.

		Returns:
			True if the session is connected, False otherwise. Never raises.
		"""
		self.reconnect_watchdog.reset()
		try:
			await self.session.open()
			if self.session.is_connecting:
				# another open() was already in flight; wait for it instead of racing it
				await self.wait_for_connection(self.session.connect_timeout)
		except PrinterConnectionError as e:
			logger.error(f'Failed to initialize connection to {self.url}: {e}')
			return False
		except Exception as e:
			logger.exception(f'Unexpected error initializing connection to {self.url}: {e}')
			return False
		finally:
			self.status_watchdog.start_polling()
		return self.session.is_connected

	async def wait_for_connection(self, timeout: float = 5.0) -> bool:
		"""
		Wait until the session is connected.

		Args:
			timeout: Maximum seconds to wait

		Returns:
			True once connected; False on timeout, or immediately once automatic
			reconnection has given up.
		"""
		loop = asyncio.get_running_loop()
		deadline = loop.time() + timeout
		while True:
			if self.session.is_connected:
				return True
			if self.reconnect_watchdog.gave_up:
				logger.debug('Not waiting for a connection, reconnection attempts are exhausted')
				return False
			if loop.time() >= deadline:
				return False
			await asyncio.sleep(CONNECTION_CHECK_INTERVAL)

	async def check_status(self) -> SystemSnapshot:
		"""
		Ask the print server for its status and store it in the status cache.

		Returns:
			The new snapshot

		Raises:
			PrinterConnectionError: The request failed; the cached snapshot is left unchanged.
		"""
		return await self._check_status(wait=True)

	async def _poll_status(self) -> SystemSnapshot:
		return await self._check_status(wait=False)

	async def _check_status(self, wait: bool) -> SystemSnapshot:
		response = await self.correlator.call(CheckStatusRequest(), wait=wait)
		if response.system is None:
			raise RemoteError('Print server did not include its status in the response')
		self.status_cache.update(response.system)
		return response.system

	def get_system_status(self) -> SystemStatus:
		"""Return the cached status merged with the live connection state. Never sends anything."""
		return self.status_cache.read(is_connected=self.session.is_connected)

	async def get_printers(self) -> list[dict[str, Any]]:
		"""
		List the printers known to the print server.

		Printer descriptors are returned exactly as the server sent them.

		Raises:
			PrinterConnectionError: The request failed or the response had no printer list.
		"""
		try:
			response = await self.correlator.call(GetPrintersRequest())
			if response.printers is None:
				raise RemoteError(response.message or 'Print server did not return a printer list')
		except PrinterConnectionError as e:
			raise e.with_prefix('Failed to get printers') from e

		if response.system is not None:
			self.status_cache.update(response.system)
		return response.printers

	async def print_image(
		self,
		image: ImageSource,
		printer_name: str,
		*,
		mime_type: str | None = None,
		connect_timeout: float = 5.0,
	) -> str:
		"""
		Send an image to a printer.

		Args:
			image: Image bytes, a path to an image file, or a binary file object
			printer_name: Name of the target printer, as returned by get_printers()
			mime_type: Image mime type, guessed when omitted
			connect_timeout: Seconds to wait for the connection before giving up

		Returns:
			The print server's confirmation message

		Raises:
			RetryBudgetExhausted: Not connected and automatic reconnection gave up.
			ConnectTimeout: Not connected within ``connect_timeout``.
			PrinterConnectionError: Any other failure, prefixed with 'Print failed'.
		"""
		if not await self.wait_for_connection(connect_timeout):
			if self.reconnect_watchdog.gave_up:
				raise RetryBudgetExhausted(
					'Print failed: could not reach the print server, reconnection attempts exhausted',
					{'url': self.url, 'attempts': self.retry_budget.attempts},
				)
			raise ConnectTimeout(
				f'Print failed: no connection to the print server after {connect_timeout:.1f}s',
				{'url': self.url, 'timeout': connect_timeout},
			)

		try:
			data_uri = await asyncio.to_thread(encode_image_data_uri, image, mime_type)
		except (OSError, ValueError, TypeError) as e:
			raise PrinterConnectionError(f'Print failed: could not read image: {e}') from e

		request = PrintRequest(image=data_uri, printer=printer_name)
		logger.info(f'Printing on {printer_name!r} ({len(data_uri)} byte payload)')
		try:
			response = await self.correlator.call(request)
		except PrinterConnectionError as e:
			raise e.with_prefix('Print failed') from e

		if response.system is not None:
			self.status_cache.update(response.system)
		return response.message or 'Print job sent'

	async def close(self) -> None:
		"""Close the session for good: no automatic reconnection until initialize() is called again."""
		self.status_watchdog.stop_polling()
		self.reconnect_watchdog.stop()
		await self.session.close()
