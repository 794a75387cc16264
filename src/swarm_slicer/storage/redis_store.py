"""Redis-backed result store."""

import asyncio
import json
import logging
from datetime import datetime
from typing import List, Optional

from redis.asyncio import Redis, ConnectionPool
from redis.exceptions import RedisError, ConnectionError as RedisConnectionError

from ..exceptions import ResultStoreError
from ..models.execution_models import ExecutionState, SubtaskExecutionStatus
from ..models.result_models import (
    BatchMetadata,
    BatchStatus,
    ResultQuery,
    StoredSubtaskResult,
    WorkflowResults,
)
from .base import ResultStore
from .memory_store import FINISHED_BATCH_STATUSES

logger = logging.getLogger(__name__)


class RedisResultStore(ResultStore):
    """
    Result store persisting JSON documents in Redis.

    PATTERN: {prefix}:{kind}:{id} keys, sorted set per workflow ordered by execution order
    CRITICAL: Redis failures surface as ResultStoreError
    GOTCHA: query_results without a workflow filter scans every result key
    """

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379/0",
        key_prefix: str = "swarm_slicer",
        max_connections: int = 10,
        redis: Optional[Redis] = None,
    ):
        """
        Initialize Redis result store.

        Args:
            redis_url: Redis connection URL
            key_prefix: Namespace for every key
            max_connections: Connection pool size
            redis: Preconfigured client, skips pool creation
        """
        self.redis_url = redis_url
        self.key_prefix = key_prefix
        self.max_connections = max_connections
        self._pool: Optional[ConnectionPool] = None
        self._redis: Optional[Redis] = redis
        self.logger = logging.getLogger(__name__)

    async def _get_redis(self) -> Redis:
        """
        Get Redis client with connection pooling and retry logic.

        Returns:
            Redis async client
        """
        if self._redis is None:
            self._pool = ConnectionPool.from_url(
                self.redis_url,
                max_connections=self.max_connections,
                decode_responses=True,
            )
            self._redis = Redis(connection_pool=self._pool)

            max_retries = 3
            for attempt in range(max_retries):
                try:
                    await self._redis.ping()
                    logger.info("Redis connection established successfully")
                    break
                except (RedisConnectionError, RedisError) as e:
                    if attempt == max_retries - 1:
                        logger.error(
                            f"Failed to connect to Redis after {max_retries} attempts: {e}"
                        )
                        raise ResultStoreError(f"Redis unavailable: {e}") from e
                    logger.warning(
                        f"Redis connection attempt {attempt + 1} failed, retrying..."
                    )
                    await asyncio.sleep(1)

        return self._redis

    def _key(self, kind: str, identifier: str) -> str:
        return f"{self.key_prefix}:{kind}:{identifier}"

    async def save_subtask_result(self, result: StoredSubtaskResult) -> StoredSubtaskResult:
        redis = await self._get_redis()
        stamped = self.stamp(result)

        try:
            await redis.set(
                self._key("result", stamped.subtask_id),
                json.dumps(stamped.model_dump(mode="json")),
            )
            await redis.zadd(
                self._key("workflow_results", stamped.workflow_id),
                {stamped.subtask_id: stamped.execution_order},
            )
            if stamped.batch_id:
                await redis.sadd(
                    self._key("batch_results", stamped.batch_id), stamped.subtask_id
                )
        except RedisError as e:
            logger.error(f"Failed to store result {stamped.subtask_id}: {e}")
            raise ResultStoreError(f"Failed to store result {stamped.subtask_id}") from e

        logger.debug(f"Stored result for {stamped.subtask_id} ({stamped.status.value})")
        return stamped

    async def update_subtask_status(
        self, subtask_id: str, status: SubtaskExecutionStatus
    ) -> bool:
        existing = await self.get_subtask_result(subtask_id)
        if existing is None:
            logger.warning(f"Cannot update status of unknown result {subtask_id}")
            return False

        redis = await self._get_redis()
        updated = self.stamp(existing.model_copy(update={"status": status}))
        try:
            await redis.set(
                self._key("result", subtask_id),
                json.dumps(updated.model_dump(mode="json")),
            )
        except RedisError as e:
            logger.error(f"Failed to update result {subtask_id}: {e}")
            raise ResultStoreError(f"Failed to update result {subtask_id}") from e
        return True

    async def get_subtask_result(self, subtask_id: str) -> Optional[StoredSubtaskResult]:
        redis = await self._get_redis()
        try:
            data = await redis.get(self._key("result", subtask_id))
        except RedisError as e:
            logger.error(f"Failed to retrieve result {subtask_id}: {e}")
            raise ResultStoreError(f"Failed to retrieve result {subtask_id}") from e
        return StoredSubtaskResult.model_validate(json.loads(data)) if data else None

    async def save_execution_state(self, state: ExecutionState) -> None:
        redis = await self._get_redis()
        try:
            await redis.set(
                self._key("workflow_state", state.workflow_id),
                json.dumps(state.model_dump(mode="json")),
            )
        except RedisError as e:
            logger.error(f"Failed to store execution state {state.workflow_id}: {e}")
            raise ResultStoreError(f"Failed to store state {state.workflow_id}") from e

    async def load_execution_state(self, workflow_id: str) -> Optional[ExecutionState]:
        redis = await self._get_redis()
        try:
            data = await redis.get(self._key("workflow_state", workflow_id))
        except RedisError as e:
            logger.error(f"Failed to load execution state {workflow_id}: {e}")
            raise ResultStoreError(f"Failed to load state {workflow_id}") from e
        return ExecutionState.model_validate(json.loads(data)) if data else None

    async def get_workflow_results(self, workflow_id: str) -> WorkflowResults:
        redis = await self._get_redis()
        try:
            subtask_ids = await redis.zrange(self._key("workflow_results", workflow_id), 0, -1)
            batch_ids = await redis.smembers(self._key("workflow_batches", workflow_id))
        except RedisError as e:
            logger.error(f"Failed to read workflow {workflow_id}: {e}")
            raise ResultStoreError(f"Failed to read workflow {workflow_id}") from e

        results = await self._load_results(subtask_ids)
        batches = []
        for batch_id in sorted(batch_ids):
            metadata = await self.get_batch_metadata(batch_id)
            if metadata:
                batches.append(metadata)

        return self.summarize(
            workflow_id, results, batches, await self.load_execution_state(workflow_id)
        )

    async def save_batch_metadata(self, metadata: BatchMetadata) -> None:
        redis = await self._get_redis()
        try:
            await redis.set(
                self._key("batch", metadata.batch_id),
                json.dumps(metadata.model_dump(mode="json")),
            )
            await redis.sadd(
                self._key("workflow_batches", metadata.workflow_id), metadata.batch_id
            )
        except RedisError as e:
            logger.error(f"Failed to store batch {metadata.batch_id}: {e}")
            raise ResultStoreError(f"Failed to store batch {metadata.batch_id}") from e

    async def update_batch_status(self, batch_id: str, status: BatchStatus) -> bool:
        metadata = await self.get_batch_metadata(batch_id)
        if metadata is None:
            return False
        metadata.status = status
        if status in FINISHED_BATCH_STATUSES:
            metadata.end_time = datetime.now()
        await self.save_batch_metadata(metadata)
        return True

    async def get_batch_metadata(self, batch_id: str) -> Optional[BatchMetadata]:
        redis = await self._get_redis()
        try:
            data = await redis.get(self._key("batch", batch_id))
        except RedisError as e:
            logger.error(f"Failed to read batch {batch_id}: {e}")
            raise ResultStoreError(f"Failed to read batch {batch_id}") from e
        return BatchMetadata.model_validate(json.loads(data)) if data else None

    async def get_batch_results(self, batch_id: str) -> List[StoredSubtaskResult]:
        redis = await self._get_redis()
        try:
            subtask_ids = await redis.smembers(self._key("batch_results", batch_id))
        except RedisError as e:
            logger.error(f"Failed to read batch results {batch_id}: {e}")
            raise ResultStoreError(f"Failed to read batch results {batch_id}") from e

        results = await self._load_results(sorted(subtask_ids))
        return sorted(results, key=lambda r: r.execution_order)

    async def query_results(self, query: ResultQuery) -> List[StoredSubtaskResult]:
        if query.workflow_id:
            candidates = (await self.get_workflow_results(query.workflow_id)).results
        else:
            candidates = await self._scan_results()
        return self.filter_results(candidates, query)

    async def cleanup(self, older_than: datetime) -> int:
        redis = await self._get_redis()
        removed = 0

        try:
            for result in await self._scan_results():
                if result.storage_timestamp and result.storage_timestamp < older_than:
                    await redis.delete(self._key("result", result.subtask_id))
                    await redis.zrem(
                        self._key("workflow_results", result.workflow_id), result.subtask_id
                    )
                    if result.batch_id:
                        await redis.srem(
                            self._key("batch_results", result.batch_id), result.subtask_id
                        )
                    removed += 1

            async for key in redis.scan_iter(match=self._key("workflow_state", "*"), count=100):
                data = await redis.get(key)
                if data:
                    state = ExecutionState.model_validate(json.loads(data))
                    if state.start_time < older_than:
                        await redis.delete(key)
                        removed += 1

            async for key in redis.scan_iter(match=self._key("batch", "*"), count=100):
                data = await redis.get(key)
                if data:
                    metadata = BatchMetadata.model_validate(json.loads(data))
                    if metadata.start_time < older_than:
                        await redis.delete(key)
                        await redis.srem(
                            self._key("workflow_batches", metadata.workflow_id),
                            metadata.batch_id,
                        )
                        removed += 1

        except RedisError as e:
            logger.error(f"Failed to clean up results: {e}")
            raise ResultStoreError("Cleanup failed") from e

        logger.info(f"Cleaned up {removed} stored records older than {older_than}")
        return removed

    async def next_execution_order(self, workflow_id: str) -> int:
        redis = await self._get_redis()
        try:
            return int(await redis.incr(self._key("workflow_order", workflow_id)))
        except RedisError as e:
            logger.error(f"Failed to allocate execution order for {workflow_id}: {e}")
            raise ResultStoreError("Failed to allocate execution order") from e

    async def close(self) -> None:
        """Close Redis connection."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None
        if self._pool:
            await self._pool.aclose()
            self._pool = None
        logger.info("Redis connection closed")

    async def _load_results(self, subtask_ids: List[str]) -> List[StoredSubtaskResult]:
        results = []
        for subtask_id in subtask_ids:
            result = await self.get_subtask_result(subtask_id)
            if result:
                results.append(result)
        return results

    async def _scan_results(self) -> List[StoredSubtaskResult]:
        redis = await self._get_redis()
        results = []
        try:
            async for key in redis.scan_iter(match=self._key("result", "*"), count=100):
                data = await redis.get(key)
                if data:
                    results.append(StoredSubtaskResult.model_validate(json.loads(data)))
        except RedisError as e:
            logger.error(f"Failed to scan results: {e}")
            raise ResultStoreError("Failed to scan results") from e
        return results
