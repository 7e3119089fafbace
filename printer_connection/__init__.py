"""Client for the local print server.

Keeps a persistent WebSocket session to the print server, reconnects after
restarts and exposes status, printer listing and image printing as coroutines.
"""

from typing import TYPE_CHECKING

from printer_connection.config import CONFIG
from printer_connection.logging_config import setup_logging

if CONFIG.PRINTER_CONNECTION_SETUP_LOGGING:
	logger = setup_logging()

if TYPE_CHECKING:
	from printer_connection.connection.service import PrinterConnection
	from printer_connection.exceptions import (
		CallInProgressError,
		ConnectTimeout,
		NotConnectedError,
		PrinterConnectionError,
		ProtocolError,
		RemoteError,
		ResponseTimeout,
		RetryBudgetExhausted,
		TransportError,
	)
	from printer_connection.status.views import SystemSnapshot, SystemStatus
	from printer_connection.transport.views import ConnectionState, RetryBudget

# name -> module, imported on first attribute access
_LAZY_IMPORTS = {
	'PrinterConnection': 'printer_connection.connection.service',
	'SystemSnapshot': 'printer_connection.status.views',
	'SystemStatus': 'printer_connection.status.views',
	'ConnectionState': 'printer_connection.transport.views',
	'RetryBudget': 'printer_connection.transport.views',
	'PrinterConnectionError': 'printer_connection.exceptions',
	'ConnectTimeout': 'printer_connection.exceptions',
	'TransportError': 'printer_connection.exceptions',
	'NotConnectedError': 'printer_connection.exceptions',
	'ProtocolError': 'printer_connection.exceptions',
	'RemoteError': 'printer_connection.exceptions',
	'RetryBudgetExhausted': 'printer_connection.exceptions',
	'ResponseTimeout': 'printer_connection.exceptions',
	'CallInProgressError': 'printer_connection.exceptions',
}


def __getattr__(name: str):
	if name in _LAZY_IMPORTS:
		from importlib import import_module

		attr = getattr(import_module(_LAZY_IMPORTS[name]), name)
		globals()[name] = attr
		return attr
	raise AttributeError(f'module {__name__!r} has no attribute {name!r}')


__all__ = list(_LAZY_IMPORTS)
