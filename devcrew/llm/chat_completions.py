"""
OpenAI-compatible chat completions client (DeepSeek by default).

Async HTTP via aiohttp. Transport and API errors are reported as
``success=False`` responses rather than raised.
"""

import asyncio
from typing import Any, Dict, List, Optional, Sequence

import aiohttp

from .base import CompletionService
from ..runtime.types import ChatMessage, ToolCall, ToolCallResponse
from ..tools.base import ToolRegistry
from ..utils.logger import get_logger

logger = get_logger(__name__)


DEFAULT_BASE_URL = "https://api.deepseek.com"
DEFAULT_MODEL = "deepseek-chat"


def build_payload(
    conversation: Sequence[ChatMessage],
    tools: List[Dict[str, Any]],
    model: str,
    max_tokens: int,
    temperature: float,
) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "model": model,
        "messages": [m.to_dict() for m in conversation],
        "max_tokens": max_tokens,
        "temperature": temperature,
    }
    if tools:
        payload["tools"] = tools
        payload["tool_choice"] = "auto"
    return payload


def parse_response(data: Dict[str, Any]) -> ToolCallResponse:
    """Convert a chat completions JSON body into a ToolCallResponse."""
    choices = data.get("choices") or []
    if not choices:
        return ToolCallResponse(
            content="Completion API returned no choices.",
            success=False,
            metadata={"Error": "EmptyChoices"},
        )

    message = choices[0].get("message") or {}
    tool_calls = [ToolCall.from_dict(tc) for tc in message.get("tool_calls") or []]

    metadata: Dict[str, Any] = {}
    if choices[0].get("finish_reason"):
        metadata["FinishReason"] = choices[0]["finish_reason"]
    usage = data.get("usage")
    if usage:
        metadata["Usage"] = usage

    return ToolCallResponse(
        content=message.get("content") or "",
        tool_calls=tool_calls or None,
        success=True,
        metadata=metadata,
    )


class ChatCompletionsService(CompletionService):
    """
    Client for ``POST {base_url}/chat/completions``.

    Tool schemas for the requested services are rendered by the tool
    registry in function-calling format.
    """

    def __init__(
        self,
        api_key: str,
        registry: ToolRegistry,
        base_url: Optional[str] = None,
        model: str = DEFAULT_MODEL,
        max_tokens: int = 4096,
        temperature: float = 1.0,
        timeout: int = 120,
    ):
        self.api_key = api_key
        self.registry = registry
        self.base_url = (base_url or DEFAULT_BASE_URL).rstrip("/")
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self._session: Optional[aiohttp.ClientSession] = None
        logger.info("ChatCompletionsService initialized", model=model, base_url=self.base_url)

    @property
    def url(self) -> str:
        return f"{self.base_url}/chat/completions"

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=self.timeout,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Accept": "application/json",
                },
            )
        return self._session

    async def send(
        self,
        conversation: Sequence[ChatMessage],
        tool_services: Sequence[str] = (),
    ) -> ToolCallResponse:
        payload = build_payload(
            conversation,
            self.registry.function_schemas(tool_services),
            self.model,
            self.max_tokens,
            self.temperature,
        )

        try:
            session = self._get_session()
            async with session.post(self.url, json=payload) as resp:
                if resp.status != 200:
                    body = await resp.text()
                    logger.error("Completion request failed", status=resp.status, body=body[:500])
                    return ToolCallResponse(
                        content=f"Completion API error {resp.status}: {body}",
                        success=False,
                        metadata={"Error": f"HTTP {resp.status}"},
                    )
                data = await resp.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error("Completion request failed", error=str(e) or type(e).__name__)
            return ToolCallResponse(
                content=f"Completion request failed: {e}",
                success=False,
                metadata={"Error": str(e) or type(e).__name__},
            )

        response = parse_response(data)
        logger.debug(
            "Completion received",
            tool_calls=len(response.tool_calls or []),
            content_length=len(response.content),
        )
        return response

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
        logger.info("ChatCompletionsService closed")
