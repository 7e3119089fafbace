"""Lifecycle events published by TransportSession on its event bus."""

from bubus import BaseEvent
from pydantic import Field


class SessionOpenedEvent(BaseEvent):
	"""The WebSocket handshake completed and the session is CONNECTED."""

	url: str

	event_timeout: float | None = 10.0


class SessionClosedEvent(BaseEvent):
	"""The session went back to DISCONNECTED.

	``expected`` is True only for closes requested through TransportSession.close();
	everything else (daemon restart, network loss, failed connect) is unexpected.
	"""

	url: str
	expected: bool = False
	reason: str | None = None

	event_timeout: float | None = 10.0


class SessionErrorEvent(BaseEvent):
	"""A socket-level error occurred while connecting or reading."""

	url: str
	error_type: str
	message: str
	details: dict = Field(default_factory=dict)

	event_timeout: float | None = 10.0
