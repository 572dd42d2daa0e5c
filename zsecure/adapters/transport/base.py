from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class TransportResponse:
	"""Raw answer from the protection service.

	Attributes:
		status_code: HTTP status code.
		body: Parsed JSON body, or None when the body was not valid JSON.
	"""

	status_code: int
	body: Any

	@property
	def is_success(self) -> bool:
		return 200 <= self.status_code < 300


class AbstractTransport(ABC):
	"""Interface for transports that POST JSON to the protection service."""

	@abstractmethod
	async def post_json(self, url: str, payload: dict[str, Any]) -> TransportResponse:
		"""Send a JSON body and return the status code and parsed JSON body.

		Error statuses are returned, not raised.

		Args:
			url: Absolute endpoint URL.
			payload: JSON-serializable request body.

		Returns:
			TransportResponse: Status code and parsed body.

		Raises:
			TransportTimeoutError: If the call exceeds the transport timeout.
			TransportError: If the service cannot be reached.
		"""
		...

	async def aclose(self) -> None:
		"""Release network resources held by the transport."""
		return None
