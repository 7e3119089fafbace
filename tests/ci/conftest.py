"""
Shared fixtures for printer-connection tests.

Every test talks to a real WebSocket server (FakeDaemon) on localhost, so the
transport, correlator and reconnection code paths are exercised end to end.
"""

import os

# keep the package from installing its own log handler; pytest captures logs itself
os.environ['PRINTER_CONNECTION_SETUP_LOGGING'] = 'false'

import pytest

from printer_connection.connection.service import PrinterConnection
from printer_connection.transport.session import TransportSession
from tests.ci.fake_daemon import FakeDaemon, HangingServer


@pytest.fixture
async def daemon():
	"""Print server answering requests one at a time, in order."""
	server = FakeDaemon()
	await server.start()
	yield server
	await server.stop()


@pytest.fixture
async def concurrent_daemon():
	"""Print server that answers every request from its own task, in any order."""
	server = FakeDaemon(concurrent=True)
	await server.start()
	yield server
	await server.stop()


@pytest.fixture
async def hanging_server():
	server = HangingServer()
	await server.start()
	yield server
	await server.stop()


@pytest.fixture
async def make_session():
	"""Factory for TransportSessions that are closed after the test."""
	sessions: list[TransportSession] = []

	def _make(url: str, **kwargs) -> TransportSession:
		kwargs.setdefault('connect_timeout', 1.0)
		session = TransportSession(url, **kwargs)
		sessions.append(session)
		return session

	yield _make

	for session in sessions:
		await session.close()
		await session.event_bus.stop(clear=True, timeout=2)


@pytest.fixture
async def make_connection():
	"""Factory for PrinterConnections with test-sized timeouts, closed after the test."""
	connections: list[PrinterConnection] = []

	def _make(url: str, **kwargs) -> PrinterConnection:
		kwargs.setdefault('connect_timeout', 1.0)
		kwargs.setdefault('response_timeout', 2.0)
		kwargs.setdefault('status_interval', 60.0)
		kwargs.setdefault('max_reconnect_attempts', 3)
		kwargs.setdefault('reconnect_delay', 0.05)
		kwargs.setdefault('reconnect_max_delay', 0.2)
		connection = PrinterConnection(url, **kwargs)
		connections.append(connection)
		return connection

	yield _make

	for connection in connections:
		await connection.close()
		await connection.event_bus.stop(clear=True, timeout=2)
