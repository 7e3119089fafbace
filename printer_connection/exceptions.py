"""
Exceptions raised by printer-connection.

Exception Hierarchy:
	PrinterConnectionError (base)
	├── ConnectTimeout         - no open signal within the connect deadline
	├── TransportError         - socket-level failure
	│   └── NotConnectedError  - operation attempted without an open session
	├── ProtocolError          - undecodable or malformed inbound payload
	├── RemoteError            - daemon replied with a non-success status
	├── RetryBudgetExhausted   - no further automatic reconnection
	├── ResponseTimeout        - no response to a correlated call in time
	└── CallInProgressError    - another correlated call holds the session

Every error carries a ``message`` suitable for direct display to a user.
"""

from typing import Any


class PrinterConnectionError(Exception):
	"""Base class for all printer-connection errors."""

	def __init__(self, message: str, details: dict[str, Any] | None = None):
		super().__init__(message)
		self.message = message
		self.details = details or {}

	def __str__(self) -> str:
		return self.message

	def with_prefix(self, prefix: str) -> 'PrinterConnectionError':
		"""Return an error of the same type whose message starts with ``prefix``."""
		error = type(self).__new__(type(self))
		PrinterConnectionError.__init__(error, f'{prefix}: {self.message}', dict(self.details))
		return error


class ConnectTimeout(PrinterConnectionError):
	"""The print server did not accept the connection before the deadline."""


class TransportError(PrinterConnectionError):
	"""The socket failed while connecting, sending or receiving."""


class NotConnectedError(TransportError):
	"""There is no open connection to the print server."""

	def __init__(self, message: str = 'Not connected to the print server', details: dict[str, Any] | None = None):
		super().__init__(message, details)


class ProtocolError(PrinterConnectionError):
	"""The print server sent something that is not a valid response."""


class RemoteError(PrinterConnectionError):
	"""The print server answered with a non-success status."""


class RetryBudgetExhausted(PrinterConnectionError):
	"""Automatic reconnection gave up; call initialize() to try again."""

	def __init__(
		self,
		message: str = 'Could not reach the print server: reconnection attempts exhausted',
		details: dict[str, Any] | None = None,
	):
		super().__init__(message, details)


class ResponseTimeout(PrinterConnectionError):
	"""A request was sent but no response arrived in time."""


class CallInProgressError(PrinterConnectionError):
	"""Another request is still waiting for its response on this session."""
