import json
import logging
from typing import Any, Callable, Dict, Optional

import redis

from library_app.config import settings
from library_app.exceptions import ConflictError

logger = logging.getLogger(__name__)

redis_client = redis.Redis(
    host=settings.REDIS_HOST,
    port=settings.REDIS_PORT,
    decode_responses=True
)

class IdempotencyKeyManager:
    def __init__(self, prefix="idempotency:", client=None):
        self.prefix = prefix
        self.client = client if client is not None else redis_client

    def check_and_store(self, key: str, ttl_seconds: int = settings.IDEMPOTENCY_TTL) -> bool:
        """
        Claims the key atomically (SET NX).
        Returns True if the key already existed (duplicate request)
        """
        full_key = f"{self.prefix}{key}"
        claimed = self.client.set(full_key, "processing", nx=True, ex=ttl_seconds)
        return not claimed

    def get_response(self, key: str) -> Optional[Dict[str, Any]]:
        """
        Stored response for the key, if the first request completed
        """
        response_key = f"{self.prefix}{key}:response"
        result = self.client.get(response_key)

        if result:
            try:
                return json.loads(result)
            except ValueError:
                logger.warning(f"Discarding unreadable idempotent response for {key}")
                return None
        return None

    def store_response(self, key: str, response_data: Dict[str, Any], ttl_seconds: int = settings.IDEMPOTENCY_TTL):
        full_key = f"{self.prefix}{key}"
        response_key = f"{full_key}:response"

        self.client.setex(response_key, ttl_seconds, json.dumps(response_data, default=str))
        self.client.setex(full_key, ttl_seconds, "completed")

    def release(self, key: str) -> None:
        """
        Forget a key whose request failed, so the client may retry it
        """
        self.client.delete(f"{self.prefix}{key}")


def run_idempotent(
    idempotency_key: Optional[str],
    scope: str,
    action: Callable[[], Dict[str, Any]],
    manager: Optional[IdempotencyKeyManager] = None,
) -> Dict[str, Any]:
    """
    Run ``action`` once per (scope, key). A repeated key replays the stored
    response; a repeat that arrives while the first is still running is a
    conflict. Without a key the action simply runs.
    """
    if not idempotency_key:
        return action()

    manager = manager or IdempotencyKeyManager()
    key = f"{scope}:{idempotency_key}"

    if manager.check_and_store(key):
        saved_response = manager.get_response(key)
        if saved_response is not None:
            logger.info(f"Replaying stored response for idempotency key {key}")
            return saved_response
        raise ConflictError("A request with this Idempotency-Key is already being processed.")

    try:
        response = action()
    except Exception:
        manager.release(key)
        raise

    manager.store_response(key, response)
    return response
