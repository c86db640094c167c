"""Completion collaborator used by every model-backed stage.

The pipeline never talks to a vendor SDK directly. It builds a
``CompletionRequest`` and hands it to whatever ``CompletionClient`` the
caller supplied; ``AnthropicCompletionClient`` is the production one.
"""

from collections.abc import AsyncIterator
from typing import Any, Protocol, runtime_checkable

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from stepwise.core.config import Settings, get_settings
from stepwise.core.errors import MalformedResponse, ModelTimeout, ModelUnavailable

# =============================================================================
# REQUEST / RESPONSE
# =============================================================================


class CompletionRequest(BaseModel):
    """A single system+user prompt exchange."""

    model_config = ConfigDict(frozen=True, protected_namespaces=())

    system_prompt: str
    user_prompt: str
    max_tokens: int = Field(default=1000, gt=0)
    temperature: float = Field(default=0.7, ge=0, le=1)
    model: str | None = Field(
        default=None,
        description="Model name; the client default is used when omitted",
    )


class Completion(BaseModel):
    """Text answer plus token usage."""

    model_config = ConfigDict(frozen=True, protected_namespaces=())

    text: str
    input_tokens: int = 0
    output_tokens: int = 0
    model: str | None = None


@runtime_checkable
class CompletionClient(Protocol):
    """Contract consumed by the pipeline stages."""

    @property
    def is_available(self) -> bool: ...

    async def complete(self, request: CompletionRequest) -> Completion: ...

    def stream(self, request: CompletionRequest) -> AsyncIterator[str]: ...


# =============================================================================
# ANTHROPIC IMPLEMENTATION
# =============================================================================


class AnthropicCompletionClient:
    """
    Completion client backed by the Anthropic Messages API.

    SDK failures are translated into the pipeline's error taxonomy:
    timeouts become ``ModelTimeout``, connection and status errors become
    ``ModelUnavailable``, empty or non-text answers become
    ``MalformedResponse``.

    Example:
        >>> client = AnthropicCompletionClient()
        >>> completion = await client.complete(
        ...     CompletionRequest(system_prompt="...", user_prompt="...")
        ... )
    """

    def __init__(self, settings: Settings | None = None) -> None:
        """Initialize the client.

        Args:
            settings: Optional settings override. Uses default if not provided.
        """
        self.settings = settings or get_settings()
        self._client: Any = None

        if not self.settings.model_configured:
            logger.warning("Anthropic credentials not configured. Breakdown will use fallback data.")

    @property
    def is_available(self) -> bool:
        return self.settings.model_configured

    def _get_client(self) -> Any:
        if not self.is_available:
            raise ModelUnavailable("ANTHROPIC_API_KEY is not set")

        if self._client is None:
            from anthropic import AsyncAnthropic

            self._client = AsyncAnthropic(
                api_key=self.settings.anthropic_api_key.get_secret_value(),
                timeout=self.settings.model_timeout_seconds,
                max_retries=0,
            )
        return self._client

    def _message_kwargs(self, request: CompletionRequest) -> dict[str, Any]:
        return {
            "model": request.model or self.settings.architect_model,
            "max_tokens": request.max_tokens,
            "temperature": request.temperature,
            "system": request.system_prompt,
            "messages": [{"role": "user", "content": request.user_prompt}],
        }

    async def complete(self, request: CompletionRequest) -> Completion:
        """Run one non-streaming completion.

        Args:
            request: Prompt and sampling parameters.

        Returns:
            The text answer with usage counters.

        Raises:
            ModelUnavailable: No credentials, or the service is unreachable.
            ModelTimeout: The request timed out.
            MalformedResponse: The answer carried no text.
        """
        import anthropic

        client = self._get_client()
        kwargs = self._message_kwargs(request)
        logger.debug(f"Calling {kwargs['model']} (max_tokens={request.max_tokens})")

        try:
            response = await client.messages.create(**kwargs)
        except anthropic.APITimeoutError as e:
            raise ModelTimeout(str(e)) from e
        except anthropic.APIError as e:
            raise ModelUnavailable(str(e)) from e

        text = "".join(
            block.text for block in response.content if getattr(block, "type", None) == "text"
        ).strip()
        if not text:
            raise MalformedResponse(f"No text in response from {kwargs['model']}")

        usage = getattr(response, "usage", None)
        return Completion(
            text=text,
            input_tokens=getattr(usage, "input_tokens", 0) or 0,
            output_tokens=getattr(usage, "output_tokens", 0) or 0,
            model=kwargs["model"],
        )

    async def stream(self, request: CompletionRequest) -> AsyncIterator[str]:
        """Yield text deltas of one completion as they arrive.

        Raises:
            ModelUnavailable: No credentials, or the service is unreachable.
            ModelTimeout: The stream stalled past the timeout.
        """
        import anthropic

        client = self._get_client()
        kwargs = self._message_kwargs(request)
        logger.debug(f"Streaming from {kwargs['model']}")

        try:
            async with client.messages.stream(**kwargs) as stream:
                async for text in stream.text_stream:
                    yield text
        except anthropic.APITimeoutError as e:
            raise ModelTimeout(str(e)) from e
        except anthropic.APIError as e:
            raise ModelUnavailable(str(e)) from e


def create_completion_client(settings: Settings | None = None) -> CompletionClient:
    """Factory for the default completion client."""
    return AnthropicCompletionClient(settings)
