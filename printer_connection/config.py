"""Configuration for printer-connection.

Settings come from the environment (a ``.env`` file in the working directory is
loaded first). Values are read on every attribute access so that changes made
after import, e.g. by tests, are picked up.
"""

import logging
import os

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)


def _get_float(name: str, default: float) -> float:
	raw = os.getenv(name)
	if raw is None or raw.strip() == '':
		return default
	try:
		return float(raw)
	except ValueError:
		logger.warning(f'Ignoring invalid {name}={raw!r}, using {default}')
		return default


def _get_int(name: str, default: int) -> int:
	raw = os.getenv(name)
	if raw is None or raw.strip() == '':
		return default
	try:
		return int(raw)
	except ValueError:
		logger.warning(f'Ignoring invalid {name}={raw!r}, using {default}')
		return default


class Config:
	"""Lazily evaluated environment settings."""

	@property
	def PRINTER_CONNECTION_URL(self) -> str:
		return os.getenv('PRINTER_CONNECTION_URL', 'ws://localhost:8080')

	@property
	def PRINTER_CONNECTION_CONNECT_TIMEOUT(self) -> float:
		return _get_float('PRINTER_CONNECTION_CONNECT_TIMEOUT', 5.0)

	@property
	def PRINTER_CONNECTION_RESPONSE_TIMEOUT(self) -> float:
		return _get_float('PRINTER_CONNECTION_RESPONSE_TIMEOUT', 30.0)

	@property
	def PRINTER_CONNECTION_STATUS_INTERVAL(self) -> float:
		return _get_float('PRINTER_CONNECTION_STATUS_INTERVAL', 5.0)

	@property
	def PRINTER_CONNECTION_MAX_RECONNECT_ATTEMPTS(self) -> int:
		return _get_int('PRINTER_CONNECTION_MAX_RECONNECT_ATTEMPTS', 3)

	@property
	def PRINTER_CONNECTION_RECONNECT_DELAY(self) -> float:
		return _get_float('PRINTER_CONNECTION_RECONNECT_DELAY', 3.0)

	@property
	def PRINTER_CONNECTION_RECONNECT_MAX_DELAY(self) -> float:
		return _get_float('PRINTER_CONNECTION_RECONNECT_MAX_DELAY', 30.0)

	@property
	def PRINTER_CONNECTION_LOGGING_LEVEL(self) -> str:
		return os.getenv('PRINTER_CONNECTION_LOGGING_LEVEL', 'info').lower()

	@property
	def PRINTER_CONNECTION_SETUP_LOGGING(self) -> bool:
		return os.getenv('PRINTER_CONNECTION_SETUP_LOGGING', 'true').strip().lower() not in ('false', '0', 'no', 'off')


CONFIG = Config()
