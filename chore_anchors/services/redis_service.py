import asyncio
import json
from contextlib import contextmanager
from typing import Any, Dict, List, Optional, Tuple

import redis.asyncio as redis
from redis import exceptions as redis_errors

from chore_anchors.config import Settings
from chore_anchors.errors import AnchorNotFound, AnchorStoreError, StoreRejected, StoreUnavailable
from chore_anchors.logging_config import get_logger
from chore_anchors.models.anchor import AnchorRecord
from chore_anchors.services.anchor_store import AnchorStore, OnSnapshot, Unsubscribe

logger = get_logger(__name__)

KEY_PREFIX = "anchor:"


@contextmanager
def redis_errors_as_store_errors(operation: str):
    """Translate redis-py exceptions into the store error taxonomy."""
    try:
        yield
    # AuthenticationError subclasses ConnectionError, so it is checked first
    except (redis_errors.AuthenticationError, redis_errors.ResponseError) as e:
        raise StoreRejected(f"Redis refused {operation}: {e}") from e
    except redis_errors.RedisError as e:
        raise StoreUnavailable(f"Redis unavailable during {operation}: {e}") from e


class RedisAnchorStore(AnchorStore):
    """Anchors stored as JSON strings under ``anchor:{id}``.

    Writes publish a change notice on ``channel``; subscribers re-read the
    whole collection on every notice.
    """

    def __init__(self, redis_client: Optional[redis.Redis] = None, channel: str = "anchor_updates"):
        self.redis_client = redis_client or redis.Redis(host="localhost", port=6379, decode_responses=True)
        self.channel = channel
        self._listener: Optional[Tuple[asyncio.Task, Any]] = None

    @classmethod
    def from_settings(cls, config: Settings) -> "RedisAnchorStore":
        client = redis.Redis(
            host=config.redis_host,
            port=config.redis_port,
            password=config.redis_password,
            decode_responses=True
        )
        return cls(client, channel=config.anchor_channel)

    def _key(self, anchor_id: str) -> str:
        return f"{KEY_PREFIX}{anchor_id}"

    async def _publish(self, change: str, anchor_id: str) -> None:
        await self.redis_client.publish(self.channel, json.dumps({"type": change, "id": anchor_id}))

    async def get_all(self) -> List[AnchorRecord]:
        with redis_errors_as_store_errors("get_all"):
            keys = await self.redis_client.keys(f"{KEY_PREFIX}*")
            if not keys:
                return []
            values = await self.redis_client.mget(keys)
        records = []
        for key, value in zip(keys, values):
            if not value:
                continue
            try:
                records.append(AnchorRecord.model_validate_json(value))
            except ValueError as e:
                logger.error("Skipping unreadable anchor under %s: %s", key, e)
        return records

    async def get(self, anchor_id: str) -> Optional[AnchorRecord]:
        with redis_errors_as_store_errors("get"):
            data = await self.redis_client.get(self._key(anchor_id))
        if not data:
            return None
        try:
            return AnchorRecord.model_validate_json(data)
        except ValueError as e:
            raise StoreRejected(f"Anchor {anchor_id} is not a readable record: {e}") from e

    async def put(self, anchor_id: str, record: AnchorRecord) -> None:
        with redis_errors_as_store_errors("put"):
            await self.redis_client.set(self._key(anchor_id), record.model_dump_json(by_alias=True))
            await self._publish("anchor_put", anchor_id)

    async def update(self, anchor_id: str, fields: Dict[str, Any]) -> None:
        record = await self.get(anchor_id)
        if record is None:
            raise AnchorNotFound(anchor_id)
        merged = record.model_copy(update=fields)
        with redis_errors_as_store_errors("update"):
            await self.redis_client.set(self._key(anchor_id), merged.model_dump_json(by_alias=True))
            await self._publish("anchor_updated", anchor_id)

    async def delete(self, anchor_id: str) -> None:
        with redis_errors_as_store_errors("delete"):
            await self.redis_client.delete(self._key(anchor_id))
            await self._publish("anchor_deleted", anchor_id)

    async def subscribe_collection(self, on_snapshot: OnSnapshot) -> Unsubscribe:
        await self._stop_listener()

        pubsub = self.redis_client.pubsub()
        with redis_errors_as_store_errors("subscribe"):
            await pubsub.subscribe(self.channel)
        logger.info("Subscribed to anchor changes on %s", self.channel)

        try:
            on_snapshot(await self.get_all())
        except AnchorStoreError:
            await pubsub.aclose()
            raise

        task = asyncio.create_task(self._listen(pubsub, on_snapshot))
        self._listener = (task, pubsub)

        async def unsubscribe() -> None:
            if self._listener is not None and self._listener[0] is task:
                await self._stop_listener()

        return unsubscribe

    async def _listen(self, pubsub, on_snapshot: OnSnapshot) -> None:
        try:
            async for message in pubsub.listen():
                if message["type"] != "message":
                    continue
                try:
                    on_snapshot(await self.get_all())
                except AnchorStoreError as e:
                    logger.error("Failed to refresh anchors after change notice: %s", e)
        except redis_errors.RedisError as e:
            logger.error("Redis subscriber error: %s", e)

    async def _stop_listener(self) -> None:
        listener, self._listener = self._listener, None
        if listener is None:
            return
        task, pubsub = listener
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        await pubsub.aclose()

    async def close(self) -> None:
        await self._stop_listener()
        await self.redis_client.aclose()
