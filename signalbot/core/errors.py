"""Error hierarchy for the decision pipeline.

None of these propagate out of an analysis: the resolver and the sink
degrade them to a conservative verdict or a log line.
"""

from datetime import UTC, datetime
from typing import Any


class SignalBotError(Exception):
    """Base exception for all pipeline errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        self.timestamp = datetime.now(UTC)
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
        }


class DataUnavailable(SignalBotError):
    """Market data source returned nothing usable for an asset."""


class AdvisoryMalformed(SignalBotError):
    """Advisory response failed to parse or validate."""


class AdvisoryUnreachable(SignalBotError):
    """Advisory service could not be reached or answered with an error status."""


class PersistenceFailure(SignalBotError):
    """Durable store write or read failed."""


class FeedDisconnect(SignalBotError):
    """Continuous event feed closed or failed."""


class SolanaRpcError(SignalBotError):
    """JSON-RPC level error returned by a Solana node."""

    def __init__(self, code: int, message: str, data: Any = None) -> None:
        self.code = code
        self.data = data
        super().__init__(f"RPC Error {code}: {message}", details={"code": code})
        self.message = message
