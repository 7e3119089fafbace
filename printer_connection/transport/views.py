from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class ConnectionState(str, Enum):
	"""Lifecycle state of the transport session."""

	DISCONNECTED = 'disconnected'
	CONNECTING = 'connecting'
	CONNECTED = 'connected'


class RetryBudget(BaseModel):
	"""Bounded count of automatic reconnection attempts after an unexpected close."""

	model_config = ConfigDict(validate_assignment=True)

	attempts: int = Field(default=0, ge=0)
	max_attempts: int = Field(default=3, ge=0)

	@property
	def exhausted(self) -> bool:
		return self.attempts >= self.max_attempts

	@property
	def remaining(self) -> int:
		return max(self.max_attempts - self.attempts, 0)
