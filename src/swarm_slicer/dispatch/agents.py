"""Agent backends the dispatcher sends isolated prompts to."""

import inspect
import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, List, Optional, Union

import tiktoken
from openai import (
    AsyncOpenAI,
    APITimeoutError as OpenAITimeoutError,
    RateLimitError as OpenAIRateLimitError,
    APIError as OpenAIAPIError,
)

from ..exceptions import AgentError, AgentTimeoutError
from ..models.agent_models import AgentCapability, AgentProfile
from ..models.subtask_models import Subtask

logger = logging.getLogger(__name__)

AgentCallable = Callable[[Subtask, str], Union[str, Awaitable[str]]]


class BaseAgent(ABC):
    """
    Abstract base class for all agent backends.

    CRITICAL: invoke() must be async, the dispatcher awaits it under a timeout
    GOTCHA: Raise AgentError for retryable backend failures
    """

    def __init__(
        self,
        agent_id: str,
        capabilities: Optional[List[AgentCapability]] = None,
        cost_per_minute: Optional[float] = None,
    ):
        """
        Initialize agent.

        Args:
            agent_id: Identifier used in results and fallback chains
            capabilities: Kinds of work the agent is suited to, used for matching
            cost_per_minute: Cost estimate used for matching
        """
        self.agent_id = agent_id
        self.profile = AgentProfile(
            agent_id=agent_id,
            capabilities=capabilities or [],
            cost_per_minute=cost_per_minute,
        )
        self.logger = logging.getLogger(f"{__name__}.{agent_id}")

    @abstractmethod
    async def invoke(self, subtask: Subtask, prompt: str) -> str:
        """
        Run one subtask.

        Args:
            subtask: Subtask being executed
            prompt: Isolated prompt with embedded tracking instructions

        Returns:
            Agent output text, possibly containing checkpoint markers

        Raises:
            AgentError: On retryable backend failures
        """
        pass

    async def close(self) -> None:
        """Release backend resources."""
        pass

    def __repr__(self) -> str:
        return f"{type(self).__name__}(agent_id={self.agent_id!r})"


class CallableAgent(BaseAgent):
    """Adapts a plain function or coroutine function into an agent."""

    def __init__(
        self,
        agent_id: str,
        func: AgentCallable,
        capabilities: Optional[List[AgentCapability]] = None,
    ):
        super().__init__(agent_id, capabilities)
        self.func = func

    async def invoke(self, subtask: Subtask, prompt: str) -> str:
        result = self.func(subtask, prompt)
        if inspect.isawaitable(result):
            result = await result
        return result or ""


class OpenAIAgent(BaseAgent):
    """
    Agent backed by an OpenAI chat model.

    PATTERN: Official OpenAI SDK with async client
    CRITICAL: Check the prompt against the context window before sending
    GOTCHA: Rate limits and API errors surface as retryable AgentError
    """

    def __init__(
        self,
        agent_id: str,
        api_key: Optional[str] = None,
        model: str = "gpt-4o-mini",
        context_window: int = 128000,
        max_tokens: int = 4096,
        temperature: float = 0.7,
        system_prompt: Optional[str] = None,
        client: Optional[Any] = None,
        capabilities: Optional[List[AgentCapability]] = None,
    ):
        """
        Initialize OpenAI agent.

        Args:
            agent_id: Agent identifier
            api_key: OpenAI API key, read from OPENAI_API_KEY when omitted
            model: Chat model name
            context_window: Model context window in tokens
            max_tokens: Completion token limit
            temperature: Sampling temperature (0-2)
            system_prompt: Optional system message
            client: Preconfigured AsyncOpenAI client
            capabilities: Kinds of work the agent is suited to
        """
        super().__init__(agent_id, capabilities)
        self.model = model
        self.context_window = context_window
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.system_prompt = system_prompt
        self.client = client or AsyncOpenAI(api_key=api_key)

        try:
            self.tokenizer = tiktoken.encoding_for_model(model)
        except KeyError:
            # Fallback to cl100k_base for newer models
            self.tokenizer = tiktoken.get_encoding("cl100k_base")

    def get_num_tokens(self, text: str) -> int:
        return len(self.tokenizer.encode(text))

    async def invoke(self, subtask: Subtask, prompt: str) -> str:
        """
        Send the isolated prompt as a chat completion.

        Raises:
            ValueError: If the prompt cannot fit the context window
            AgentTimeoutError: If the API call timed out
            AgentError: On rate limits and API failures
        """
        messages = []
        if self.system_prompt:
            messages.append({"role": "system", "content": self.system_prompt})
        messages.append({"role": "user", "content": prompt})

        total_tokens = sum(self.get_num_tokens(m["content"]) for m in messages)
        if total_tokens + self.max_tokens > self.context_window:
            raise ValueError(
                f"Request exceeds context window: {total_tokens + self.max_tokens} > "
                f"{self.context_window}"
            )
        self.logger.debug(f"Sending {subtask.id} to {self.model} ({total_tokens} tokens)")

        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
            )
            return response.choices[0].message.content or ""

        except OpenAITimeoutError as e:
            self.logger.warning(f"OpenAI timeout for {subtask.id}: {e}")
            raise AgentTimeoutError(f"OpenAI timeout: {str(e)}", self.agent_id)
        except OpenAIRateLimitError as e:
            self.logger.warning(f"Rate limited: {e}")
            raise AgentError(f"OpenAI rate limit: {str(e)}", self.agent_id)
        except OpenAIAPIError as e:
            self.logger.error(f"OpenAI API error: {e}")
            raise AgentError(f"OpenAI API error: {str(e)}", self.agent_id)

    async def close(self) -> None:
        """Close OpenAI client."""
        await self.client.close()
