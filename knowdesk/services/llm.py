"""Language model provider backed by Gemini through LangChain."""

import asyncio
from dataclasses import dataclass
from typing import Any, Optional, Protocol

import httpx
from langchain_core.exceptions import ModelError
from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage
from langchain_google_genai import ChatGoogleGenerativeAI
from langchain_google_genai.chat_models import ChatGoogleGenerativeAIError

from knowdesk.errors import ModelProviderError
from knowdesk.services.client_cache import TenantClientCache
from knowdesk.utils.logging_config import logger

PROVIDER_ERRORS = (ChatGoogleGenerativeAIError, ModelError, httpx.HTTPError, ValueError)

PLATFORM_TENANT = "__platform__"


@dataclass(frozen=True)
class Completion:
    text: str
    input_tokens: int
    output_tokens: int
    model: str


class LanguageModelProvider(Protocol):
    async def complete(
        self,
        tenant_id: str,
        model: str,
        system_prompt: str,
        prompt: str,
        temperature: float,
        max_tokens: int,
        api_key: Optional[str] = None,
    ) -> Completion: ...

    def describe_image(self, image_b64: str, instruction: str) -> str: ...


def message_text(message: BaseMessage) -> str:
    content: Any = message.content
    if isinstance(content, str):
        return content
    parts = []
    for part in content:
        if isinstance(part, str):
            parts.append(part)
        elif isinstance(part, dict) and part.get("type") == "text":
            parts.append(part.get("text", ""))
    return "".join(parts)


def _estimate_tokens(text: str) -> int:
    return max(1, len(text) // 4)


class GeminiProvider:
    def __init__(
        self,
        api_key: str,
        cache: TenantClientCache,
        timeout: float = 30.0,
        vision_model: str = "gemini-2.5-flash",
    ):
        self.api_key = api_key
        self.cache = cache
        self.timeout = timeout
        self.vision_model = vision_model

    def _client(
        self,
        tenant_id: str,
        api_key: Optional[str],
        model: str,
        temperature: float,
        max_tokens: int,
    ) -> ChatGoogleGenerativeAI:
        clients: dict = self.cache.get(tenant_id, dict)
        key = (model, temperature, max_tokens)
        client = clients.get(key)
        if client is None:
            client = ChatGoogleGenerativeAI(
                model=model,
                temperature=temperature,
                max_output_tokens=max_tokens,
                google_api_key=api_key or self.api_key,
                max_retries=1,
                timeout=self.timeout,
            )
            clients[key] = client
        return client

    async def complete(
        self,
        tenant_id: str,
        model: str,
        system_prompt: str,
        prompt: str,
        temperature: float,
        max_tokens: int,
        api_key: Optional[str] = None,
    ) -> Completion:
        """
        Runs one chat completion with a timeout.

        Raises:
            ModelProviderError: on provider failure or timeout.
        """
        client = self._client(str(tenant_id), api_key, model, temperature, max_tokens)
        messages = [SystemMessage(content=system_prompt), HumanMessage(content=prompt)]
        try:
            response = await asyncio.wait_for(client.ainvoke(messages), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            logger.error(f"Model {model} timed out after {self.timeout}s")
            raise ModelProviderError(f"Model {model} timed out after {self.timeout}s") from e
        except PROVIDER_ERRORS as e:
            logger.error(f"Model {model} failed: {e}")
            raise ModelProviderError(f"Model {model} failed: {e}") from e

        text = message_text(response)
        usage = getattr(response, "usage_metadata", None) or {}
        return Completion(
            text=text,
            input_tokens=usage.get("input_tokens") or _estimate_tokens(system_prompt + prompt),
            output_tokens=usage.get("output_tokens") or _estimate_tokens(text),
            model=model,
        )

    def describe_image(self, image_b64: str, instruction: str) -> str:
        client = self._client(PLATFORM_TENANT, None, self.vision_model, 0.0, 4096)
        message = HumanMessage(
            content=[
                {"type": "text", "text": instruction},
                {"type": "image_url", "image_url": f"data:image/png;base64,{image_b64}"},
            ]
        )
        try:
            response = client.invoke([message])
        except PROVIDER_ERRORS as e:
            logger.error(f"Vision model {self.vision_model} failed: {e}")
            raise ModelProviderError(f"Vision model {self.vision_model} failed: {e}") from e
        return message_text(response)
