"""Tests for agent backends."""

import httpx
import pytest
from unittest.mock import AsyncMock, MagicMock, patch
from openai import APIError, APITimeoutError, RateLimitError

from swarm_slicer.dispatch.agents import CallableAgent, OpenAIAgent
from swarm_slicer.exceptions import AgentError, AgentTimeoutError
from swarm_slicer.models.subtask_models import Subtask


REQUEST = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")


@pytest.fixture
def subtask():
    return Subtask(id="a", title="Task", description="Do it")


@pytest.fixture
def mock_client():
    """Create mock AsyncOpenAI client."""
    client = MagicMock()
    message = MagicMock()
    message.content = "[CHECKPOINT:todo-0:COMPLETED] done"
    choice = MagicMock()
    choice.message = message
    response = MagicMock()
    response.choices = [choice]
    client.chat.completions.create = AsyncMock(return_value=response)
    client.close = AsyncMock()
    return client


@pytest.fixture
def agent(mock_client):
    """Create OpenAI agent with word-count tokenizer."""
    with patch("swarm_slicer.dispatch.agents.tiktoken") as mock_tiktoken:
        tokenizer = MagicMock()
        tokenizer.encode.side_effect = lambda text: text.split()
        mock_tiktoken.encoding_for_model.return_value = tokenizer
        yield OpenAIAgent(
            "writer", model="gpt-4o-mini", context_window=100, max_tokens=10,
            system_prompt="You are precise.", client=mock_client,
        )


class TestCallableAgent:
    """Test suite for CallableAgent."""

    @pytest.mark.asyncio
    async def test_sync_function(self, subtask):
        """Test plain functions are adapted."""
        agent = CallableAgent("fn", lambda s, prompt: f"{s.id}:{prompt}")
        assert await agent.invoke(subtask, "go") == "a:go"

    @pytest.mark.asyncio
    async def test_async_function(self, subtask):
        """Test coroutine functions are awaited."""

        async def answer(s, prompt):
            return prompt.upper()

        agent = CallableAgent("fn", answer)
        assert await agent.invoke(subtask, "go") == "GO"

    @pytest.mark.asyncio
    async def test_none_becomes_empty(self, subtask):
        """Test a None result becomes an empty string."""
        assert await CallableAgent("fn", lambda s, p: None).invoke(subtask, "go") == ""


class TestOpenAIAgent:
    """Test suite for OpenAIAgent."""

    @pytest.mark.asyncio
    async def test_invoke(self, agent, mock_client, subtask):
        """Test prompt is sent with the system message."""
        content = await agent.invoke(subtask, "write the intro")

        assert content == "[CHECKPOINT:todo-0:COMPLETED] done"
        kwargs = mock_client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o-mini"
        assert kwargs["max_tokens"] == 10
        assert kwargs["messages"] == [
            {"role": "system", "content": "You are precise."},
            {"role": "user", "content": "write the intro"},
        ]

    @pytest.mark.asyncio
    async def test_context_window_exceeded(self, agent, mock_client, subtask):
        """Test oversized prompts are rejected before the API call."""
        with pytest.raises(ValueError):
            await agent.invoke(subtask, "word " * 100)
        mock_client.chat.completions.create.assert_not_called()

    @pytest.mark.asyncio
    async def test_timeout_mapped(self, agent, mock_client, subtask):
        """Test SDK timeouts become AgentTimeoutError."""
        mock_client.chat.completions.create.side_effect = APITimeoutError(request=REQUEST)

        with pytest.raises(AgentTimeoutError) as exc_info:
            await agent.invoke(subtask, "hi")
        assert exc_info.value.agent_id == "writer"

    @pytest.mark.asyncio
    async def test_rate_limit_mapped(self, agent, mock_client, subtask):
        """Test rate limits become retryable AgentError."""
        response = httpx.Response(429, request=REQUEST)
        mock_client.chat.completions.create.side_effect = RateLimitError(
            "slow down", response=response, body=None
        )

        with pytest.raises(AgentError, match="rate limit"):
            await agent.invoke(subtask, "hi")

    @pytest.mark.asyncio
    async def test_api_error_mapped(self, agent, mock_client, subtask):
        """Test generic API errors become AgentError."""
        mock_client.chat.completions.create.side_effect = APIError(
            "server exploded", REQUEST, body=None
        )

        with pytest.raises(AgentError, match="API error"):
            await agent.invoke(subtask, "hi")

    @pytest.mark.asyncio
    async def test_close(self, agent, mock_client):
        """Test close releases the client."""
        await agent.close()
        mock_client.close.assert_awaited_once()
