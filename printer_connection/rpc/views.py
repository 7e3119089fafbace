"""Wire messages exchanged with the print server."""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict

from printer_connection.status.views import SystemSnapshot


class RequestKind(str, Enum):
	CHECK_STATUS = 'checkStatus'
	GET_PRINTERS = 'getPrinters'
	PRINT = 'print'


# Requests
class DaemonRequest(BaseModel):
	"""A message sent to the print server. ``type`` selects the operation."""

	model_config = ConfigDict(extra='forbid')

	type: RequestKind

	@property
	def kind(self) -> RequestKind:
		return self.type

	def to_wire(self) -> dict[str, Any]:
		return self.model_dump(mode='json')


class CheckStatusRequest(DaemonRequest):
	type: Literal[RequestKind.CHECK_STATUS] = RequestKind.CHECK_STATUS


class GetPrintersRequest(DaemonRequest):
	type: Literal[RequestKind.GET_PRINTERS] = RequestKind.GET_PRINTERS


class PrintRequest(DaemonRequest):
	"""Print one image. ``image`` is a data URI, ``printer`` the target printer name."""

	type: Literal[RequestKind.PRINT] = RequestKind.PRINT
	image: str
	printer: str

	def __repr__(self) -> str:
		# data URIs are huge, keep them out of logs
		return f'PrintRequest(printer={self.printer!r}, image=<{len(self.image)} chars>)'


# Responses
class DaemonResponse(BaseModel):
	"""A successful reply. Error replies never become a DaemonResponse; they raise RemoteError."""

	model_config = ConfigDict(extra='allow')

	status: str
	system: SystemSnapshot | None = None
	printers: list[Any] | None = None
	message: str | None = None


@dataclass
class PendingRequest:
	"""The single in-flight request slot of a RequestCorrelator."""

	kind: RequestKind
	future: asyncio.Future
	# set once an inbound message has been consumed for this request, even if the caller already gave up
	answered: bool = False
	created: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
