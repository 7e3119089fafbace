"""Periodic status poll and disconnect bookkeeping for the status cache."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any, ClassVar

from bubus import BaseEvent
from pydantic import Field, PrivateAttr

from printer_connection.exceptions import CallInProgressError, PrinterConnectionError
from printer_connection.status.service import StatusCache
from printer_connection.transport.events import SessionClosedEvent, SessionErrorEvent
from printer_connection.transport.watchdog_base import BaseWatchdog
from printer_connection.utils import create_task_with_error_handling


class StatusWatchdog(BaseWatchdog):
	"""Polls the print server for status every ``interval`` seconds while connected.

	Ticks are skipped while the session is not connected, while a connection attempt is
	in flight, or while another request holds the session. Closes and socket errors are
	reflected in the status cache as they happen.
	"""

	LISTENS_TO: ClassVar[list[type[BaseEvent[Any]]]] = [SessionClosedEvent, SessionErrorEvent]

	status_cache: StatusCache
	poll_status: Callable[[], Awaitable[Any]]
	interval: float = Field(default=5.0, gt=0)

	_poll_task: asyncio.Task | None = PrivateAttr(default=None)

	async def on_SessionClosedEvent(self, event: SessionClosedEvent) -> None:
		self.status_cache.mark_disconnected()

	async def on_SessionErrorEvent(self, event: SessionErrorEvent) -> None:
		self.status_cache.mark_disconnected(error=event.message)

	@property
	def is_polling(self) -> bool:
		return self._poll_task is not None and not self._poll_task.done()

	def start_polling(self) -> None:
		self.stop_polling()
		self._poll_task = create_task_with_error_handling(self._poll_loop(), name='printer-connection-status-poll')

	def stop_polling(self) -> None:
		task, self._poll_task = self._poll_task, None
		if task is not None and not task.done():
			task.cancel()

	async def _poll_loop(self) -> None:
		while True:
			await asyncio.sleep(self.interval)
			if not self.session.is_connected or self.session.is_connecting:
				continue
			try:
				await self.poll_status()
			except CallInProgressError:
				self.logger.debug('Status poll skipped, another request is in flight')
			except PrinterConnectionError as e:
				self.logger.warning(f'Status check failed: {e}')
