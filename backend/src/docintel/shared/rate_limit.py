"""Rate limiting for upload credential issuance

Two implementations share one interface:
- InMemoryRateLimiter: per-process map guarded by a mutex (single instance)
- DynamoDBRateLimiter: atomic conditional counter shared by all instances
"""

import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Callable, Dict, Optional

from botocore.exceptions import BotoCoreError, ClientError

from .errors import PersistenceError, client_error_code

logger = logging.getLogger(__name__)


class RateLimiter(ABC):
    """Abstract interface for per-client request limiting."""

    @abstractmethod
    def try_acquire(self, client_id: str) -> bool:
        """
        Count one request for a client.

        Args:
            client_id: Caller identity the limit is keyed on

        Returns:
            True if the request is within the limit, False if it must be rejected
        """
        pass


class InMemoryRateLimiter(RateLimiter):
    """In-memory limiter (for single-instance/local development)."""

    def __init__(
        self,
        max_requests: int,
        window_seconds: int = 60,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        # Format: {client_id: (window_reset_at, count)}
        self._windows: Dict[str, tuple[float, int]] = {}
        self._lock = threading.Lock()

    def try_acquire(self, client_id: str) -> bool:
        now = self._clock()
        with self._lock:
            reset_at, count = self._windows.get(client_id, (0.0, 0))

            if now >= reset_at:
                # Window starts at the client's first request after expiry
                self._windows[client_id] = (now + self.window_seconds, 1)
                self._cleanup_expired(now)
                return True

            if count >= self.max_requests:
                return False

            self._windows[client_id] = (reset_at, count + 1)
            return True

    def reset(self):
        """Forget all windows."""
        with self._lock:
            self._windows.clear()

    def _cleanup_expired(self, now: float):
        expired = [key for key, (reset_at, _) in self._windows.items() if now >= reset_at]
        for key in expired:
            del self._windows[key]


class DynamoDBRateLimiter(RateLimiter):
    """
    DynamoDB-backed limiter for multi-instance deployments.

    Each (client, window) pair is one item whose counter is incremented with a
    conditional ADD, so concurrent increments from different instances cannot
    overshoot the limit. Windows are aligned to wall-clock boundaries and the
    items expire through the table's TTL attribute.
    """

    def __init__(
        self,
        table,
        max_requests: int,
        window_seconds: int = 60,
        clock: Callable[[], float] = time.time,
    ):
        self._client = table.meta.client
        self._table_name = table.name
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock

    def try_acquire(self, client_id: str) -> bool:
        now = int(self._clock())
        window_start = now - (now % self.window_seconds)
        key = {
            "PK": f"RATE#{client_id}",
            "SK": f"WINDOW#{window_start}",
        }

        try:
            self._client.update_item(
                TableName=self._table_name,
                Key=key,
                UpdateExpression="ADD requestCount :one SET expiresAt = :expires",
                ConditionExpression="attribute_not_exists(requestCount) OR requestCount < :limit",
                ExpressionAttributeValues={
                    ":one": 1,
                    ":limit": self.max_requests,
                    ":expires": window_start + 2 * self.window_seconds,
                },
            )
            return True
        except ClientError as e:
            if client_error_code(e) == "ConditionalCheckFailedException":
                logger.info(f"Rate limit reached for client {client_id} in window {window_start}")
                return False
            logger.error(f"Failed to update rate limit counter for {client_id}: {e}")
            raise PersistenceError(f"Rate limit store unavailable: {e}") from e
        except BotoCoreError as e:
            logger.error(f"Could not reach rate limit store for {client_id}: {e}")
            raise PersistenceError(f"Rate limit store unavailable: {e}") from e


def create_rate_limiter(
    max_requests: int,
    window_seconds: int,
    table=None,
    table_name: Optional[str] = None,
) -> RateLimiter:
    """
    Create the appropriate limiter for the deployment.

    Args:
        max_requests: Requests allowed per window
        window_seconds: Window length
        table: DynamoDB Table resource, when a shared counter store is configured
        table_name: Table name, used only for logging

    Returns:
        RateLimiter instance (DynamoDB if a table is given, otherwise in-memory)
    """
    if table is not None:
        logger.info(f"Using DynamoDB rate limiter: table={table_name}, max={max_requests}/{window_seconds}s")
        return DynamoDBRateLimiter(table, max_requests, window_seconds)

    logger.info(
        "DYNAMODB_RATE_LIMIT_TABLE not set. Using in-memory rate limiting. "
        "Limits will not be shared across instances."
    )
    return InMemoryRateLimiter(max_requests, window_seconds)
