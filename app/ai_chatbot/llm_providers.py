"""
LLM Provider Abstraction Layer
Supports Anthropic Claude and OpenAI GPT models, plus OpenAI embeddings
"""
import json
import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, Optional

import httpx

from .config import LLMProviderConfig

logger = logging.getLogger(__name__)


class LLMProviderError(Exception):
    """Raised when an LLM or embedding request cannot be completed"""


@dataclass
class TokenUsage:
    """Prompt and completion token counts reported by a provider"""

    input_tokens: int = 0
    output_tokens: int = 0

    def add(self, usage: Optional[Dict[str, Any]]) -> None:
        """Accumulate a usage block in either Anthropic or OpenAI naming"""
        if not usage:
            return
        self.input_tokens += int(usage.get("input_tokens") or usage.get("prompt_tokens") or 0)
        self.output_tokens += int(
            usage.get("output_tokens") or usage.get("completion_tokens") or 0
        )


class _HTTPMixin:
    """Reuse an injected client or open one per request"""

    _http: Optional[httpx.AsyncClient]
    timeout: float

    @asynccontextmanager
    async def _client(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._http is not None:
            yield self._http
            return
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            yield client


class LLMProvider(_HTTPMixin, ABC):
    """Base class for LLM providers"""

    name = "base"

    @abstractmethod
    async def query(
        self,
        system_prompt: str,
        user_prompt: str,
        conversation_history: Optional[list] = None,
        json_mode: bool = True
    ) -> Dict[str, Any]:
        """Query the LLM with a prompt"""
        raise NotImplementedError

    @abstractmethod
    def stream(
        self,
        system_prompt: str,
        user_prompt: str,
        usage: Optional[TokenUsage] = None,
    ) -> AsyncIterator[str]:
        """Yield answer text fragments as the provider produces them.

        Token counts are added to ``usage`` as the stream reports them.
        """
        raise NotImplementedError

    @staticmethod
    def _sse_payloads(line: str) -> Optional[Dict[str, Any]]:
        """Decode one ``data:`` line of a server-sent event stream"""
        if not line.startswith("data:"):
            return None
        data = line[len("data:"):].strip()
        if not data or data == "[DONE]":
            return None
        try:
            return json.loads(data)
        except json.JSONDecodeError:
            logger.debug("Skipping undecodable stream line")
            return None


class ClaudeProvider(LLMProvider):
    """Anthropic Claude API provider"""

    name = "claude"

    def __init__(
        self,
        config: LLMProviderConfig,
        model: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = config.claude_api_key
        self.model = model or config.claude_model
        self.max_tokens = config.claude_max_tokens
        self.base_url = config.claude_base_url.rstrip("/")
        self.timeout = config.request_timeout
        self._http = http_client

        if not self.api_key:
            raise ValueError("Claude API key not configured. Set CLAUDE_API_KEY environment variable.")

    def _headers(self) -> Dict[str, str]:
        return {
            "x-api-key": self.api_key,
            "anthropic-version": "2023-06-01",
            "content-type": "application/json",
        }

    def _payload(self, system_prompt: str, messages: list, stream: bool = False) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "system": system_prompt,
            "messages": messages,
        }
        if stream:
            payload["stream"] = True
        return payload

    async def query(
        self,
        system_prompt: str,
        user_prompt: str,
        conversation_history: Optional[list] = None,
        json_mode: bool = True
    ) -> Dict[str, Any]:
        """Query Claude API"""

        messages = list(conversation_history or [])
        user_content = user_prompt
        if json_mode:
            user_content += "\n\nIMPORTANT: Respond with valid JSON only."
        messages.append({"role": "user", "content": user_content})

        try:
            async with self._client() as client:
                response = await client.post(
                    f"{self.base_url}/v1/messages",
                    headers=self._headers(),
                    json=self._payload(system_prompt, messages),
                )
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPError as e:
            logger.error(f"Claude API error: {str(e)}")
            raise LLMProviderError(f"Claude API request failed: {str(e)}") from e

        content = "".join(
            block.get("text", "") for block in data.get("content", []) if block.get("type") == "text"
        )
        return {
            "content": content,
            "model": self.model,
            "provider": self.name,
            "usage": data.get("usage", {}),
        }

    async def stream(
        self,
        system_prompt: str,
        user_prompt: str,
        usage: Optional[TokenUsage] = None,
    ) -> AsyncIterator[str]:
        payload = self._payload(system_prompt, [{"role": "user", "content": user_prompt}], stream=True)
        try:
            async with self._client() as client:
                async with client.stream(
                    "POST", f"{self.base_url}/v1/messages", headers=self._headers(), json=payload
                ) as response:
                    if not response.is_success:
                        await response.aread()
                        raise LLMProviderError(
                            f"Claude stream failed with status {response.status_code}"
                        )
                    async for line in response.aiter_lines():
                        event = self._sse_payloads(line)
                        if event is None:
                            continue
                        kind = event.get("type")
                        if kind == "content_block_delta":
                            text = event.get("delta", {}).get("text")
                            if text:
                                yield text
                        elif kind == "message_start" and usage is not None:
                            usage.add(event.get("message", {}).get("usage"))
                        elif kind == "message_delta" and usage is not None:
                            usage.add(event.get("usage"))
                        elif kind == "error":
                            message = event.get("error", {}).get("message", "unknown error")
                            raise LLMProviderError(f"Claude stream error: {message}")
        except httpx.HTTPError as e:
            logger.error(f"Claude streaming error: {str(e)}")
            raise LLMProviderError(f"Claude stream request failed: {str(e)}") from e


class ChatGPTProvider(LLMProvider):
    """OpenAI GPT API provider (Chat Completions)"""

    name = "chatgpt"

    def __init__(
        self,
        config: LLMProviderConfig,
        model: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = config.openai_api_key
        self.model = model or config.openai_model
        self.max_tokens = config.openai_max_tokens
        self.base_url = config.openai_base_url.rstrip("/")
        self.timeout = config.request_timeout
        self._http = http_client

        if not self.api_key:
            raise ValueError("OpenAI API key not configured. Set OPENAI_API_KEY environment variable.")

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    def _messages(
        self, system_prompt: str, user_prompt: str, conversation_history: Optional[list] = None
    ) -> list:
        history = []
        if system_prompt:
            history.append({"role": "system", "content": system_prompt})
        if conversation_history:
            history.extend(conversation_history)
        history.append({"role": "user", "content": user_prompt})
        return history

    async def query(
        self,
        system_prompt: str,
        user_prompt: str,
        conversation_history: Optional[list] = None,
        json_mode: bool = True
    ) -> Dict[str, Any]:
        """Query OpenAI Chat Completions"""

        user_content = user_prompt
        if json_mode:
            user_content += "\n\nIMPORTANT: Respond with valid JSON only."
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": self._messages(system_prompt, user_content, conversation_history),
            "max_tokens": self.max_tokens,
        }
        if json_mode:
            payload["response_format"] = {"type": "json_object"}

        try:
            async with self._client() as client:
                response = await client.post(
                    f"{self.base_url}/v1/chat/completions", headers=self._headers(), json=payload
                )
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPError as e:
            logger.error(f"OpenAI API error: {str(e)}")
            raise LLMProviderError(f"OpenAI API request failed: {str(e)}") from e

        content = data.get("choices", [{}])[0].get("message", {}).get("content", "") or ""
        return {
            "content": content,
            "model": self.model,
            "provider": self.name,
            "usage": data.get("usage", {}),
        }

    async def stream(
        self,
        system_prompt: str,
        user_prompt: str,
        usage: Optional[TokenUsage] = None,
    ) -> AsyncIterator[str]:
        payload = {
            "model": self.model,
            "messages": self._messages(system_prompt, user_prompt),
            "max_tokens": self.max_tokens,
            "stream": True,
            "stream_options": {"include_usage": True},
        }
        try:
            async with self._client() as client:
                async with client.stream(
                    "POST",
                    f"{self.base_url}/v1/chat/completions",
                    headers=self._headers(),
                    json=payload,
                ) as response:
                    if not response.is_success:
                        await response.aread()
                        raise LLMProviderError(
                            f"OpenAI stream failed with status {response.status_code}"
                        )
                    async for line in response.aiter_lines():
                        chunk = self._sse_payloads(line)
                        if chunk is None:
                            continue
                        if usage is not None and chunk.get("usage"):
                            usage.add(chunk["usage"])
                        for choice in chunk.get("choices") or []:
                            text = (choice.get("delta") or {}).get("content")
                            if text:
                                yield text
        except httpx.HTTPError as e:
            logger.error(f"OpenAI streaming error: {str(e)}")
            raise LLMProviderError(f"OpenAI stream request failed: {str(e)}") from e


class EmbeddingClient(_HTTPMixin):
    """OpenAI embeddings used for semantic snapshot search"""

    def __init__(self, config: LLMProviderConfig, http_client: Optional[httpx.AsyncClient] = None):
        self.api_key = config.openai_api_key
        self.model = config.embedding_model
        self.base_url = config.openai_base_url.rstrip("/")
        self.timeout = config.request_timeout
        self._http = http_client

        if not self.api_key:
            raise ValueError("OpenAI API key not configured. Set OPENAI_API_KEY environment variable.")

    async def embed(self, text: str) -> list[float]:
        try:
            async with self._client() as client:
                response = await client.post(
                    f"{self.base_url}/v1/embeddings",
                    headers={
                        "Authorization": f"Bearer {self.api_key}",
                        "Content-Type": "application/json",
                    },
                    json={"model": self.model, "input": text},
                )
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPError as e:
            logger.error(f"Embedding API error: {str(e)}")
            raise LLMProviderError(f"Embedding request failed: {str(e)}") from e

        try:
            return [float(x) for x in data["data"][0]["embedding"]]
        except (KeyError, IndexError, TypeError) as e:
            raise LLMProviderError("Embedding response carried no vector") from e


class LLMProviderFactory:
    """Factory to create appropriate LLM provider"""

    LEGACY_NAMES = {
        "claude-haiku-4.5": "claude",
        "anthropic": "claude",
        "gpt-4o-mini": "chatgpt",
        "openai": "chatgpt",
    }

    @staticmethod
    def create(
        provider_name: Optional[str],
        config: LLMProviderConfig,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> LLMProvider:
        """
        Create LLM provider instance

        Args:
            provider_name: "claude", "chatgpt", an alias, or a concrete model id
            config: Provider credentials and defaults
            http_client: Optional shared client (tests inject a mock transport)

        Returns:
            Configured LLM provider instance
        """
        normalized = (provider_name or config.default_provider).strip().lower()
        normalized = LLMProviderFactory.LEGACY_NAMES.get(normalized, normalized)

        if normalized == "claude":
            return ClaudeProvider(config, http_client=http_client)
        if normalized == "chatgpt":
            return ChatGPTProvider(config, http_client=http_client)
        if normalized.startswith("claude"):
            return ClaudeProvider(config, model=provider_name, http_client=http_client)
        if normalized.startswith("gpt"):
            return ChatGPTProvider(config, model=provider_name, http_client=http_client)

        raise ValueError(f"Unknown LLM provider: {provider_name}")
