"""Data models for the connection lifecycle manager."""

import asyncio
import random
from dataclasses import dataclass
from enum import Enum
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field

from src.connection.constants import (
    CLOSE_RECONNECT_DELAY_MS,
    DEFAULT_MAX_CONNECTION_ATTEMPTS,
    RECONNECT_BASE_DELAY_MS,
    RECONNECT_EXPONENTIAL_BASE,
    RECONNECT_JITTER_FACTOR,
    RECONNECT_MAX_DELAY_MS,
    RECONNECT_MAX_EXPONENT,
)
from src.connection.state_machine import ConnectionPhase
from src.retry.backoff import RandomSource, compute_delay


class ConnectionErrorKind(str, Enum):
    """Classification of connection start failures.

    - NETWORK: Cross-origin or network-level failure
    - OTHER: Anything else (protocol, authorization, ...)
    """

    NETWORK = "NETWORK"
    OTHER = "OTHER"


@dataclass(frozen=True)
class ConnectionState:
    """Snapshot of the connection manager's state.

    Attributes:
        phase: Current lifecycle phase.
        attempt_count: Consecutive failed start attempts.
        last_error: Most recent start failure, if any.
        reconnect_timer: Pending reconnect timer, if one is scheduled.
    """

    phase: ConnectionPhase
    attempt_count: int
    last_error: BaseException | None
    reconnect_timer: asyncio.TimerHandle | None


class ReconnectPolicy(BaseModel):
    """Configuration for reconnect behavior.

    delay = base_delay_ms * exponential_base ^ min(attempt_count - 1, max_exponent),
    jittered by ± jitter_factor and capped at max_delay_ms.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    max_connection_attempts: Annotated[int, Field(ge=1, le=100)] = (
        DEFAULT_MAX_CONNECTION_ATTEMPTS
    )
    base_delay_ms: Annotated[float, Field(ge=0, le=600000)] = RECONNECT_BASE_DELAY_MS
    exponential_base: Annotated[float, Field(ge=1.0, le=5.0)] = (
        RECONNECT_EXPONENTIAL_BASE
    )
    max_exponent: Annotated[int, Field(ge=0, le=16)] = RECONNECT_MAX_EXPONENT
    jitter_factor: Annotated[float, Field(ge=0.0, le=1.0)] = RECONNECT_JITTER_FACTOR
    max_delay_ms: Annotated[float, Field(ge=0, le=3600000)] = RECONNECT_MAX_DELAY_MS
    close_delay_ms: Annotated[float, Field(ge=0, le=600000)] = CLOSE_RECONNECT_DELAY_MS

    def get_delay_ms(self, attempt_count: int, rand: RandomSource | None = None) -> float:
        """Calculate delay before the next connection attempt.

        Args:
            attempt_count: Consecutive failures so far (>= 1).
            rand: Optional random source for the jitter.

        Returns:
            Delay in milliseconds.
        """
        exponent = min(max(attempt_count - 1, 0), self.max_exponent)
        return compute_delay(
            exponent,
            self.base_delay_ms,
            self.exponential_base,
            self.max_delay_ms,
            self.jitter_factor,
            rand or random.random,
        )
