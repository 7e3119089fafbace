"""Reconnection policy: re-open the session after an unexpected close, within a retry budget."""

import asyncio
import random
from typing import Any, ClassVar

from bubus import BaseEvent
from pydantic import Field, PrivateAttr

from printer_connection.exceptions import PrinterConnectionError
from printer_connection.transport.events import SessionClosedEvent, SessionOpenedEvent
from printer_connection.transport.views import RetryBudget
from printer_connection.transport.watchdog_base import BaseWatchdog
from printer_connection.utils import create_task_with_error_handling


class ReconnectWatchdog(BaseWatchdog):
	"""Schedules a delayed session.open() after every unexpected close until the budget is spent.

	The delay grows exponentially from ``base_delay`` up to ``max_delay`` with up to 10%
	jitter. A successful open refills the budget; an explicit close cancels any pending
	attempt. Once the budget is spent nothing is scheduled until reset() is called.
	"""

	LISTENS_TO: ClassVar[list[type[BaseEvent[Any]]]] = [SessionOpenedEvent, SessionClosedEvent]

	retry_budget: RetryBudget = Field(default_factory=RetryBudget)
	base_delay: float = Field(default=3.0, gt=0)
	max_delay: float = Field(default=30.0, gt=0)

	_timer: asyncio.Task | None = PrivateAttr(default=None)
	_gave_up_logged: bool = PrivateAttr(default=False)

	async def on_SessionOpenedEvent(self, event: SessionOpenedEvent) -> None:
		if self.retry_budget.attempts:
			self.logger.info(f'Reconnected to {event.url} after {self.retry_budget.attempts} attempt(s)')
		self.retry_budget.attempts = 0
		self._gave_up_logged = False
		self._cancel_timer()

	async def on_SessionClosedEvent(self, event: SessionClosedEvent) -> None:
		if event.expected:
			self._cancel_timer()
			return
		self.schedule_reconnect(event.reason)

	@property
	def reconnect_pending(self) -> bool:
		return self._timer is not None and not self._timer.done()

	@property
	def gave_up(self) -> bool:
		"""True once the budget is spent and no attempt is scheduled or in flight."""
		return (
			self.retry_budget.exhausted
			and not self.reconnect_pending
			and not self.session.is_connecting
			and not self.session.is_connected
		)

	def compute_delay(self, attempt: int) -> float:
		delay = min(self.base_delay * (2 ** max(attempt - 1, 0)), self.max_delay)
		return delay + random.uniform(0, delay * 0.1)

	def schedule_reconnect(self, reason: str | None = None) -> bool:
		"""Spend one attempt and schedule a re-open. Returns False when the budget is spent."""
		if self.reconnect_pending:
			self.logger.debug('Reconnect already scheduled, not spending another attempt')
			return True

		if self.retry_budget.exhausted:
			if not self._gave_up_logged:
				self.logger.warning(
					f'Giving up on {self.session.url} after {self.retry_budget.attempts} reconnection attempt(s)'
					+ (f' (last error: {reason})' if reason else '')
				)
				self._gave_up_logged = True
			return False

		self.retry_budget.attempts += 1
		attempt = self.retry_budget.attempts
		delay = self.compute_delay(attempt)
		self.logger.info(
			f'Reconnecting to {self.session.url} in {delay:.1f}s (attempt {attempt}/{self.retry_budget.max_attempts})'
		)
		self._timer = create_task_with_error_handling(self._reopen_after(delay, attempt), name=f'printer-connection-reconnect-{attempt}')
		return True

	async def _reopen_after(self, delay: float, attempt: int) -> None:
		await asyncio.sleep(delay)
		# from here on the attempt is in flight and tracked by the session state, not the timer
		self._timer = None
		if self.session.is_connected or self.session.is_connecting:
			self.logger.debug(f'Skipping reconnect attempt {attempt}, session is already {self.session.state.value}')
			return
		try:
			await self.session.open()
		except PrinterConnectionError as e:
			# the failed open reports itself as an unexpected close, which schedules the next attempt
			self.logger.info(f'Reconnect attempt {attempt} failed: {e}')

	def reset(self) -> None:
		"""Refill the budget and drop any scheduled attempt (explicit re-initialize)."""
		self._cancel_timer()
		self.retry_budget.attempts = 0
		self._gave_up_logged = False

	def stop(self) -> None:
		self._cancel_timer()

	def _cancel_timer(self) -> None:
		timer, self._timer = self._timer, None
		if timer is not None and not timer.done() and timer is not asyncio.current_task():
			timer.cancel()
