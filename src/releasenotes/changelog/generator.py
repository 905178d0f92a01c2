"""Generative backend client for changelog text.

The assembler depends only on the TextGenerator protocol:
``generate(system_instruction, user_prompt) -> str``. The production
implementation talks to an OpenAI-compatible chat endpoint (vLLM or a
hosted API) through LangChain's ChatOpenAI client.
"""

import logging
import re
from typing import Optional, Protocol, runtime_checkable

from langchain_core.messages import HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI


logger = logging.getLogger(__name__)


FENCED_BLOCK = re.compile(r"```[\w-]*[ \t]*\r?\n?(.*?)```", re.DOTALL)


def extract_fenced_block(text: str) -> str:
    """Return the contents of the first fenced code block, or the stripped text.

    LLMs frequently wrap JSON in ```json fences even when told not to.
    """
    match = FENCED_BLOCK.search(text)
    if match:
        return match.group(1).strip()
    return text.strip()


class GenerationError(Exception):
    """Raised when the generative backend fails to produce text.

    Attributes:
        message: Human-readable error description.
        cause: The underlying exception that caused the failure.
    """

    def __init__(self, message: str, cause: Optional[Exception] = None):
        self.message = message
        self.cause = cause
        super().__init__(message)


@runtime_checkable
class TextGenerator(Protocol):
    """Text-generation capability used by the changelog assembler."""

    async def generate(self, system_instruction: str, user_prompt: str) -> str:
        """Generate text for a system instruction and a user prompt."""
        ...


class LangChainTextGenerator:
    """TextGenerator backed by an OpenAI-compatible chat endpoint.

    Attributes:
        llm_url: URL of the OpenAI-compatible endpoint.
        model_name: Name of the model to use for inference.
        api_key: API key sent to the endpoint.
        timeout: Request timeout in seconds.
        temperature: Sampling temperature for the LLM.

    Example:
        >>> generator = LangChainTextGenerator(
        ...     llm_url="http://localhost:8000/v1",
        ...     model_name="Qwen/Qwen2.5-Coder-14B-Instruct-GPTQ-Int4",
        ... )
        >>> text = await generator.generate("You write changelogs.", "...")
    """

    def __init__(
        self,
        llm_url: str,
        model_name: str,
        api_key: str = "not-needed",
        timeout: float = 60.0,
        temperature: float = 0.3,
    ):
        self.llm_url = llm_url
        self.model_name = model_name
        self.api_key = api_key
        self.timeout = timeout
        self.temperature = temperature
        self._llm: Optional[ChatOpenAI] = None

    @property
    def llm(self) -> ChatOpenAI:
        """Get the LLM client, creating it if necessary."""
        if self._llm is None:
            self._llm = ChatOpenAI(
                base_url=self.llm_url,
                model=self.model_name,
                temperature=self.temperature,
                timeout=self.timeout,
                api_key=self.api_key,
            )
        return self._llm

    async def generate(self, system_instruction: str, user_prompt: str) -> str:
        """Invoke the chat model and return its text content.

        Raises:
            GenerationError: If the call fails or returns non-text content.
        """
        messages = [
            SystemMessage(content=system_instruction),
            HumanMessage(content=user_prompt),
        ]

        try:
            response = await self.llm.ainvoke(messages)
        except Exception as e:
            raise GenerationError(f"LLM invocation failed: {e}", cause=e) from e

        content = response.content
        if not isinstance(content, str):
            raise GenerationError(f"Unexpected response type: {type(content)}")
        if not content.strip():
            raise GenerationError("Empty response from LLM")

        logger.debug(
            "LLM generation complete",
            extra={"model": self.model_name, "response_length": len(content)},
        )
        return content
