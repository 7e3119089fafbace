from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class SystemSnapshot(BaseModel):
	"""The print server's self-reported state at one point in time.

	Field names are snake_case in Python and camelCase on the wire. Fields the
	server adds beyond these are kept as-is.
	"""

	model_config = ConfigDict(frozen=True, populate_by_name=True, extra='allow')

	ready: bool = False
	last_ping: str | float | None = Field(default=None, alias='lastPing')
	network_interfaces: list[Any] = Field(default_factory=list, alias='networkInterfaces')
	printers_count: int = Field(default=0, alias='printersCount')
	is_connected: bool = Field(default=False, alias='isConnected')
	error: str | None = None

	def to_wire(self) -> dict[str, Any]:
		return self.model_dump(by_alias=True, mode='json')


class SystemStatus(SystemSnapshot):
	"""A cached snapshot with the live connection flag and the time it was recorded."""

	last_update: datetime | None = Field(default=None, alias='lastUpdate')
