"""Base class for components that react to TransportSession lifecycle events."""

import logging
from collections.abc import Awaitable, Callable
from typing import Any, ClassVar

from bubus import BaseEvent, EventBus
from pydantic import BaseModel, ConfigDict, Field

from printer_connection.transport.session import TransportSession


class BaseWatchdog(BaseModel):
	"""Subscribes its ``on_<EventName>`` methods to the session's event bus.

	Subclasses list the event classes they handle in LISTENS_TO and implement one
	``on_<EventClassName>`` coroutine per event class.
	"""

	model_config = ConfigDict(
		arbitrary_types_allowed=True,
		extra='forbid',
		validate_assignment=False,
		revalidate_instances='never',
	)

	LISTENS_TO: ClassVar[list[type[BaseEvent[Any]]]] = []

	session: TransportSession = Field()

	@property
	def event_bus(self) -> EventBus:
		return self.session.event_bus

	@property
	def logger(self) -> logging.Logger:
		return logging.getLogger(f'{type(self).__module__}.{type(self).__name__}')

	def attach_to_session(self) -> None:
		"""Register every on_<Event> handler declared for the classes in LISTENS_TO."""
		for event_class in self.LISTENS_TO:
			method_name = f'on_{event_class.__name__}'
			handler = getattr(self, method_name, None)
			if handler is None:
				raise TypeError(f'{type(self).__name__} listens to {event_class.__name__} but has no {method_name}()')
			self.event_bus.on(event_class, self._named_handler(handler, method_name))

	def _named_handler(
		self, handler: Callable[[Any], Awaitable[None]], method_name: str
	) -> Callable[[Any], Awaitable[None]]:
		# bubus identifies handlers by name, so give each watchdog's handler a distinct one
		async def unique_handler(event: Any) -> None:
			await handler(event)

		unique_handler.__name__ = f'{type(self).__name__}.{method_name}'
		return unique_handler
