import logging
import sys

from printer_connection.config import CONFIG

LOG_FORMAT = '%(asctime)s [%(levelname)s] %(name)s: %(message)s'

_NOISY_LOGGERS = ('aiohttp', 'aiohttp.access', 'aiohttp.client', 'bubus', 'asyncio')


def setup_logging(level: str | None = None, stream=None, force_setup: bool = False) -> logging.Logger:
	"""Attach a single stream handler to the ``printer_connection`` logger.

	Args:
		level: Level name ('debug', 'info', ...). Defaults to PRINTER_CONNECTION_LOGGING_LEVEL.
		stream: Output stream, stderr by default.
		force_setup: Replace an existing handler instead of keeping it.

	Returns:
		The configured package logger.
	"""
	logger = logging.getLogger('printer_connection')
	if logger.handlers and not force_setup:
		return logger

	for handler in list(logger.handlers):
		logger.removeHandler(handler)

	level_name = (level or CONFIG.PRINTER_CONNECTION_LOGGING_LEVEL).upper()
	log_level = getattr(logging, level_name, logging.INFO)

	handler = logging.StreamHandler(stream or sys.stderr)
	handler.setFormatter(logging.Formatter(LOG_FORMAT))
	logger.addHandler(handler)
	logger.setLevel(log_level)
	logger.propagate = False

	# third-party chatter only matters when debugging the connector itself
	third_party_level = logging.DEBUG if log_level <= logging.DEBUG else logging.WARNING
	for name in _NOISY_LOGGERS:
		logging.getLogger(name).setLevel(third_party_level)

	return logger
