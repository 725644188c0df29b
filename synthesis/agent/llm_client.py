import logging
from typing import Any, Protocol

from openai import AsyncOpenAI, OpenAIError
from pydantic import BaseModel

from synthesis.agent.errors import GenerativeServiceError
from synthesis.core.config import settings

logger = logging.getLogger(__name__)

Message = dict[str, str]


class CallOptions(BaseModel):
    model: str | None = None
    tool: dict[str, Any] | None = None
    tool_choice: dict[str, Any] | str | None = None
    temperature: float | None = None


class GenerativeService(Protocol):
    async def call(self, messages: list[Message], options: CallOptions | None = None) -> Any:
        """Send one request and return the provider's raw response untouched."""
        ...


class LLMClient:
    """Provider-agnostic generative service client speaking the OpenAI chat completions API."""

    def __init__(
        self,
        model_name: str | None = None,
        base_url: str | None = None,
        api_key: str | None = None,
    ):
        self.model_name = model_name or settings.MODEL_DEFAULT

        resolved_api_key = api_key or settings.LLM_API_KEY
        resolved_base_url = base_url or settings.LLM_BASE_URL

        self.client = AsyncOpenAI(
            base_url=resolved_base_url,
            api_key=resolved_api_key,
        )

    def _chat_completion_kwargs(self, model_name: str, *, temperature: float | None) -> dict:
        """Build provider/model-compatible kwargs for chat completions."""
        # GPT-5 family rejects non-default temperature values in some OpenAI endpoints.
        if model_name.lower().startswith("gpt-5"):
            return {}
        if temperature is None:
            return {}
        return {"temperature": temperature}

    async def call(self, messages: list[Message], options: CallOptions | None = None) -> dict[str, Any]:
        """
        Issue a single chat completion. Returns the response as a plain dict so
        the parser can inspect every shape the provider may have used.
        """
        options = options or CallOptions()
        model_name = options.model or self.model_name

        kwargs: dict[str, Any] = self._chat_completion_kwargs(model_name, temperature=options.temperature)
        if options.tool is not None:
            kwargs["tools"] = [options.tool]
            if options.tool_choice is not None:
                kwargs["tool_choice"] = options.tool_choice

        logger.info(
            "Issuing request to model %s (%s messages, tool=%s)...",
            model_name,
            len(messages),
            bool(options.tool),
        )
        try:
            response = await self.client.chat.completions.create(
                model=model_name,
                messages=messages,
                **kwargs,
            )
        except OpenAIError as e:
            logger.error("Error calling generative service %s: %s", model_name, e)
            raise GenerativeServiceError(str(e)) from e

        if getattr(response, "choices", None) is None:
            logger.error("Received invalid response structure from %s: %s", model_name, response)
            raise GenerativeServiceError(f"Provider {model_name} returned an invalid response")

        logger.info("Received response from %s.", model_name)
        if hasattr(response, "model_dump"):
            return response.model_dump()
        return response


def get_message_text(raw: Any) -> str:
    """Pull plain text content out of a raw chat response, or '' when absent."""
    if hasattr(raw, "model_dump"):
        raw = raw.model_dump()
    if isinstance(raw, str):
        return raw
    if not isinstance(raw, dict):
        return ""
    choices = raw.get("choices") or []
    if not choices:
        return ""
    message = (choices[0] or {}).get("message") or {}
    content = message.get("content")
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "".join(
            block.get("text", "") for block in content if isinstance(block, dict) and block.get("type") == "text"
        )
    return ""
