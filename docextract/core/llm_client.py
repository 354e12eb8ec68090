"""LLM client for document extraction.

Two calls, matching how the two orchestrators talk to the model:
- ``chat_complete``: one-shot, returns the full reply (batch Pipeline)
- ``chat_stream``: incremental, yields StreamChunk values (interactive
  controller, so the user watches the reply arrive)

Retry and fallback are handled by the litellm Router (core/llm_router.py).
Parsing the reply is not this module's job; see core/response_parser.py.
"""

import logging
from dataclasses import dataclass

from litellm import Router

from docextract.core.config import FAST_MODEL, LLMConfig
from docextract.core.llm_router import build_router

logger = logging.getLogger(__name__)

# Suppress LiteLLM debug noise (done once at module load)
logging.getLogger("litellm").setLevel(logging.ERROR)
logging.getLogger("httpx").setLevel(logging.ERROR)


@dataclass
class StreamChunk:
    """One increment of a streamed reply.

    Attributes:
        content: Text delta (may be empty).
        done: True on the final chunk.
        err: Transport error; always arrives with done=True.
    """

    content: str = ""
    done: bool = False
    err: Exception | None = None


class LLMClient:
    """Client for extraction calls against one model.

    Usage:
        client = LLMClient(model="openrouter/openai/gpt-4o-mini")

        raw = await client.chat_complete(prompt.messages())

        stream = await client.chat_stream(prompt.messages())
        async for chunk in stream:
            ...
    """

    def __init__(self, model: str = FAST_MODEL, router: Router | None = None) -> None:
        """Initialize the client.

        Args:
            model: Provider-qualified model name.
            router: Router to call through. Built for ``model`` on first use
                if not given.
        """
        self.model = model
        self._router = router

    @property
    def router(self) -> Router:
        if self._router is None:
            self._router = build_router(self.model)
        return self._router

    async def chat_complete(self, messages: list[dict[str, str]]) -> str:
        """Send messages and return the full reply text.

        Raises:
            litellm exceptions: For API errors left after Router retries.
        """
        response = await self.router.acompletion(
            model=self.model,
            messages=messages,
            temperature=LLMConfig.TEMPERATURE,
            response_format=LLMConfig.RESPONSE_FORMAT,
        )
        content = response.choices[0].message.content or ""
        logger.debug(f"{self.model} replied with {len(content)} chars")
        return content

    async def chat_stream(self, messages: list[dict[str, str]]) -> "ChatStream":
        """Open a streamed completion.

        Errors opening the stream raise here; errors mid-stream arrive as a
        final chunk with ``err`` set.

        Returns:
            ChatStream yielding StreamChunk values, ending with a done chunk.
        """
        response = await self.router.acompletion(
            model=self.model,
            messages=messages,
            temperature=LLMConfig.TEMPERATURE,
            stream=True,
        )
        return ChatStream(response)


class ChatStream:
    """Async iterator of StreamChunk over a streamed completion.

    Ends with exactly one done chunk. ``aclose`` releases the underlying HTTP
    response and may be called while a read is still in flight.
    """

    def __init__(self, response):
        self._response = response
        self._parts = aiter(response)
        self._finished = False

    def __aiter__(self) -> "ChatStream":
        return self

    async def __anext__(self) -> StreamChunk:
        if self._finished:
            raise StopAsyncIteration
        while True:
            try:
                part = await anext(self._parts)
            except StopAsyncIteration:
                self._finished = True
                return StreamChunk(done=True)
            except Exception as e:  # delivered to the consumer as the final chunk
                logger.warning(f"LLM stream failed: {type(e).__name__}: {e}")
                self._finished = True
                return StreamChunk(done=True, err=e)
            if not part.choices:
                continue
            content = getattr(part.choices[0].delta, "content", None) or ""
            if content:
                return StreamChunk(content=content)

    async def aclose(self) -> None:
        """Stop iterating and close the response if it supports it."""
        self._finished = True
        close = getattr(self._response, "aclose", None)
        if close is not None:
            await close()
