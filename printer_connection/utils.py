"""Helpers shared across printer-connection: image encoding and background tasks."""

import asyncio
import base64
import logging
import mimetypes
from collections.abc import Coroutine
from pathlib import Path
from typing import Any, BinaryIO

logger = logging.getLogger(__name__)

# (magic prefix, mime type); WEBP is checked separately because its tag sits at offset 8
_IMAGE_SIGNATURES: list[tuple[bytes, str]] = [
	(b'\x89PNG\r\n\x1a\n', 'image/png'),
	(b'\xff\xd8\xff', 'image/jpeg'),
	(b'GIF87a', 'image/gif'),
	(b'GIF89a', 'image/gif'),
	(b'BM', 'image/bmp'),
]

ImageSource = bytes | bytearray | str | Path | BinaryIO


def sniff_mime_type(data: bytes) -> str | None:
	"""Guess an image mime type from its leading bytes."""
	for signature, mime_type in _IMAGE_SIGNATURES:
		if data.startswith(signature):
			return mime_type
	if data[:4] == b'RIFF' and data[8:12] == b'WEBP':
		return 'image/webp'
	return None


def _read_image(image: ImageSource) -> tuple[bytes, str | None]:
	"""Return the raw bytes of ``image`` and the file name it came from, if any."""
	if isinstance(image, (bytes, bytearray)):
		return bytes(image), None
	if isinstance(image, (str, Path)):
		path = Path(image)
		return path.read_bytes(), path.name
	data = image.read()
	if not isinstance(data, (bytes, bytearray)):
		raise TypeError('Image file objects must be opened in binary mode')
	return bytes(data), getattr(image, 'name', None)


def encode_image_data_uri(image: ImageSource, mime_type: str | None = None) -> str:
	"""Encode an image as a ``data:<mime>;base64,<payload>`` URI.

	Args:
		image: Raw bytes, a path to an image file, or a binary file object.
		mime_type: Explicit mime type; guessed from the file name or content when omitted.

	Returns:
		The data URI string the print server expects in ``print`` requests.
	"""
	data, name = _read_image(image)
	if not data:
		raise ValueError('Image is empty')

	if mime_type is None and name:
		mime_type, _ = mimetypes.guess_type(str(name))
	if mime_type is None:
		mime_type = sniff_mime_type(data) or 'application/octet-stream'

	encoded = base64.b64encode(data).decode('ascii')
	return f'data:{mime_type};base64,{encoded}'


def create_task_with_error_handling(
	coro: Coroutine[Any, Any, Any],
	*,
	name: str | None = None,
	suppress_exceptions: bool = True,
) -> asyncio.Task:
	"""Create a task whose unhandled exception is logged instead of lost.

	Args:
		coro: The coroutine to schedule.
		name: Task name, also used in the log message.
		suppress_exceptions: Log at error level (True) or re-raise into the loop handler (False).
	"""
	task = asyncio.create_task(coro, name=name)

	def _handle_done(t: asyncio.Task) -> None:
		if t.cancelled():
			return
		exc = t.exception()
		if exc is None:
			return
		if suppress_exceptions:
			logger.error(f'Background task {t.get_name()} failed: {type(exc).__name__}: {exc}')
		else:
			loop = t.get_loop()
			loop.call_exception_handler({'message': f'Background task {t.get_name()} failed', 'exception': exc, 'task': t})

	task.add_done_callback(_handle_done)
	return task
