"""Tests for the Redis result store."""

import json

import pytest
from unittest.mock import AsyncMock, MagicMock, patch
from redis.exceptions import ConnectionError as RedisConnectionError, RedisError

from swarm_slicer.exceptions import ResultStoreError
from swarm_slicer.models.result_models import BatchMetadata, BatchStatus, StoredSubtaskResult
from swarm_slicer.storage.checksum import verify_checksum
from swarm_slicer.storage.redis_store import RedisResultStore


def make_result(subtask_id="a", **kwargs):
    kwargs.setdefault("execution_order", 1)
    return StoredSubtaskResult(
        subtask_id=subtask_id,
        agent_id="agent",
        content="output",
        success=True,
        workflow_id="wf",
        **kwargs,
    )


@pytest.fixture
def mock_redis():
    """Create mock Redis client."""
    return AsyncMock()


@pytest.fixture
def store(mock_redis):
    """Create store using the mock client."""
    return RedisResultStore(key_prefix="test", redis=mock_redis)


class TestRedisResultStore:
    """Test suite for RedisResultStore."""

    @pytest.mark.asyncio
    async def test_save_writes_document_and_indexes(self, store, mock_redis):
        """Test result document, workflow index and batch index are written."""
        saved = await store.save_subtask_result(make_result(batch_id="batch-1"))

        key, payload = mock_redis.set.call_args.args
        assert key == "test:result:a"
        assert json.loads(payload)["checksum"] == saved.checksum
        mock_redis.zadd.assert_awaited_once_with("test:workflow_results:wf", {"a": 1})
        mock_redis.sadd.assert_awaited_once_with("test:batch_results:batch-1", "a")

    @pytest.mark.asyncio
    async def test_checksum_survives_serialization(self, store, mock_redis):
        """Test a stored document still verifies after a JSON round trip."""
        saved = await store.save_subtask_result(make_result())
        mock_redis.get.return_value = mock_redis.set.call_args.args[1]

        loaded = await store.get_subtask_result("a")

        assert loaded.checksum == saved.checksum
        assert verify_checksum(loaded)

    @pytest.mark.asyncio
    async def test_missing_result(self, store, mock_redis):
        """Test unknown results return None."""
        mock_redis.get.return_value = None
        assert await store.get_subtask_result("ghost") is None
        assert not await store.update_batch_status("ghost", BatchStatus.FAILED)

    @pytest.mark.asyncio
    async def test_workflow_results(self, store, mock_redis):
        """Test workflow results are loaded through the sorted-set index."""
        first = RedisResultStore.stamp(make_result("a"))
        second = RedisResultStore.stamp(make_result("b", execution_order=2))
        documents = {
            "test:result:a": json.dumps(first.model_dump(mode="json")),
            "test:result:b": json.dumps(second.model_dump(mode="json")),
        }
        mock_redis.zrange.return_value = ["a", "b"]
        mock_redis.smembers.return_value = set()
        mock_redis.get.side_effect = lambda key: documents.get(key)

        results = await store.get_workflow_results("wf")

        assert [r.subtask_id for r in results.results] == ["a", "b"]
        assert results.total_subtasks == 2
        assert results.execution_state is None

    @pytest.mark.asyncio
    async def test_batch_metadata_saved_with_index(self, store, mock_redis):
        """Test batch metadata is indexed per workflow."""
        await store.save_batch_metadata(BatchMetadata(batch_id="batch-1", workflow_id="wf"))
        mock_redis.sadd.assert_awaited_once_with("test:workflow_batches:wf", "batch-1")

    @pytest.mark.asyncio
    async def test_next_execution_order(self, store, mock_redis):
        """Test execution order uses an atomic counter."""
        mock_redis.incr.return_value = 7
        assert await store.next_execution_order("wf") == 7
        mock_redis.incr.assert_awaited_once_with("test:workflow_order:wf")

    @pytest.mark.asyncio
    async def test_redis_errors_wrapped(self, store, mock_redis):
        """Test Redis failures surface as ResultStoreError."""
        mock_redis.set.side_effect = RedisError("down")

        with pytest.raises(ResultStoreError):
            await store.save_subtask_result(make_result())

    @pytest.mark.asyncio
    async def test_connection_retries_then_fails(self):
        """Test connection is retried before giving up."""
        client = MagicMock()
        client.ping = AsyncMock(side_effect=RedisConnectionError("refused"))

        with patch("swarm_slicer.storage.redis_store.ConnectionPool") as pool, \
                patch("swarm_slicer.storage.redis_store.Redis", return_value=client), \
                patch("swarm_slicer.storage.redis_store.asyncio.sleep", new=AsyncMock()):
            store = RedisResultStore("redis://localhost:6379/9")

            with pytest.raises(ResultStoreError):
                await store.get_subtask_result("a")

        assert client.ping.await_count == 3
        pool.from_url.assert_called_once()

    @pytest.mark.asyncio
    async def test_close(self, store, mock_redis):
        """Test close releases the client."""
        await store.close()
        mock_redis.aclose.assert_awaited_once()
