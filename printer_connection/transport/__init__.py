from printer_connection.transport.events import SessionClosedEvent, SessionErrorEvent, SessionOpenedEvent
from printer_connection.transport.session import TransportSession
from printer_connection.transport.views import ConnectionState, RetryBudget

__all__ = [
	'ConnectionState',
	'RetryBudget',
	'SessionClosedEvent',
	'SessionErrorEvent',
	'SessionOpenedEvent',
	'TransportSession',
]
