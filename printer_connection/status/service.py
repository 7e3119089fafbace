import logging
from datetime import datetime, timezone

from printer_connection.status.views import SystemSnapshot, SystemStatus

logger = logging.getLogger(__name__)


class StatusCache:
	"""Holds the latest SystemSnapshot. Every write replaces the snapshot object; nothing mutates it."""

	def __init__(self, snapshot: SystemSnapshot | None = None):
		self._snapshot = snapshot or SystemSnapshot()
		self._updated_at: datetime | None = None

	@property
	def snapshot(self) -> SystemSnapshot:
		return self._snapshot

	@property
	def updated_at(self) -> datetime | None:
		return self._updated_at

	def update(self, snapshot: SystemSnapshot) -> None:
		self._snapshot = snapshot
		self._updated_at = datetime.now(timezone.utc)
		logger.debug(f'Status updated: ready={snapshot.ready} printers={snapshot.printers_count}')

	def mark_disconnected(self, error: str | None = None) -> None:
		"""Keep the last snapshot but flag it not ready / not connected, optionally with an error note."""
		changes: dict = {'ready': False, 'is_connected': False}
		if error is not None:
			changes['error'] = error
		self._snapshot = self._snapshot.model_copy(update=changes)
		self._updated_at = datetime.now(timezone.utc)

	def read(self, is_connected: bool) -> SystemStatus:
		"""Return the cached snapshot merged with the live connection flag. Never blocks."""
		data = self._snapshot.model_dump()
		data['is_connected'] = is_connected
		data['last_update'] = self._updated_at
		return SystemStatus.model_validate(data)
