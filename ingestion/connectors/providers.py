"""
Generative completion providers.

One provider is chosen from configuration at process start
(``build_generative_provider``) and injected into the enricher; nothing
else in the codebase looks at provider credentials.
"""

from abc import ABC, abstractmethod
from typing import List, Dict, Optional
import re
import httpx
from core.config import Settings
from core.exceptions import GenerativeProviderError
import logging

logger = logging.getLogger(__name__)

OPENAI_CHAT_URL = "https://api.openai.com/v1/chat/completions"
ANTHROPIC_MESSAGES_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_VERSION = "2023-06-01"

_CODE_FENCE_START = re.compile(r"^```(?:json)?\s*\n?", re.IGNORECASE)
_CODE_FENCE_END = re.compile(r"\n?```\s*$")


class GenerativeProvider(ABC):
    """Completion backend returning the raw text of the model's answer."""

    name: str = "base"

    def __init__(
        self,
        api_key: str,
        model: str,
        timeout: float = 12.0,
        client: Optional[httpx.AsyncClient] = None
    ):
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.client = client

    @abstractmethod
    def build_request(self, system_prompt: str, messages: List[Dict[str, str]]) -> Dict:
        """Return url, headers and JSON body for one completion call"""
        pass

    @abstractmethod
    def extract_text(self, body: Dict) -> Optional[str]:
        """Pull the answer text out of a provider response body"""
        pass

    async def complete(self, system_prompt: str, messages: List[Dict[str, str]]) -> str:
        """
        Run one completion.

        Raises:
            GenerativeProviderError: HTTP error, timeout, transport failure or empty answer
        """
        request = self.build_request(system_prompt, messages)

        try:
            if self.client is not None:
                response = await self._post(self.client, request)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await self._post(client, request)
        except httpx.TimeoutException as e:
            raise GenerativeProviderError(
                f"{self.name} request timed out",
                context={"provider": self.name, "timeout": self.timeout},
                original_exception=e
            )
        except httpx.HTTPError as e:
            raise GenerativeProviderError(
                f"{self.name} network error: {type(e).__name__}",
                context={"provider": self.name},
                original_exception=e
            )

        if response.status_code >= 400:
            raise GenerativeProviderError(
                f"{self.name} API error: {response.status_code}",
                context={
                    "provider": self.name,
                    "status_code": response.status_code,
                    "body": response.text[:300]
                }
            )

        try:
            text = self.extract_text(response.json())
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise GenerativeProviderError(
                f"Unreadable response from {self.name}",
                context={"provider": self.name},
                original_exception=e
            )

        if not text:
            raise GenerativeProviderError(f"Empty answer from {self.name}", context={"provider": self.name})
        return text

    async def _post(self, client: httpx.AsyncClient, request: Dict) -> httpx.Response:
        return await client.post(
            request["url"],
            headers=request["headers"],
            json=request["json"],
            timeout=self.timeout
        )


class OpenAIProvider(GenerativeProvider):
    """OpenAI chat completions in JSON-object mode"""

    name = "openai"

    def build_request(self, system_prompt: str, messages: List[Dict[str, str]]) -> Dict:
        return {
            "url": OPENAI_CHAT_URL,
            "headers": {
                "Content-Type": "application/json",
                "Authorization": f"Bearer {self.api_key}"
            },
            "json": {
                "model": self.model,
                "messages": [{"role": "system", "content": system_prompt}] + list(messages),
                "temperature": 0.3,
                "response_format": {"type": "json_object"}
            }
        }

    def extract_text(self, body: Dict) -> Optional[str]:
        return body["choices"][0]["message"]["content"]


class AnthropicProvider(GenerativeProvider):
    """Anthropic messages API; strips markdown code fences from the answer"""

    name = "anthropic"

    def build_request(self, system_prompt: str, messages: List[Dict[str, str]]) -> Dict:
        return {
            "url": ANTHROPIC_MESSAGES_URL,
            "headers": {
                "Content-Type": "application/json",
                "x-api-key": self.api_key,
                "anthropic-version": ANTHROPIC_VERSION
            },
            "json": {
                "model": self.model,
                "max_tokens": 4096,
                "system": system_prompt,
                "messages": list(messages)
            }
        }

    def extract_text(self, body: Dict) -> Optional[str]:
        text = body["content"][0]["text"]
        if not text:
            return text
        text = _CODE_FENCE_START.sub("", text.strip())
        return _CODE_FENCE_END.sub("", text)


def build_generative_provider(
    config: Settings,
    client: Optional[httpx.AsyncClient] = None
) -> Optional[GenerativeProvider]:
    """
    Resolve the active provider from configuration.

    GENERATIVE_PROVIDER:
        auto      - OpenAI if its key is set, else Anthropic if its key is set
        openai    - OpenAI (requires OPENAI_API_KEY)
        anthropic - Anthropic (requires ANTHROPIC_API_KEY)
        none      - generative enrichment disabled

    Returns:
        Provider instance, or None when generative enrichment is off
    """
    choice = (config.GENERATIVE_PROVIDER or "auto").lower()
    timeout = config.GENERATIVE_TIMEOUT_SECONDS

    if choice == "none":
        logger.info("Generative enrichment disabled by configuration")
        return None

    if choice in ("auto", "openai") and config.OPENAI_API_KEY:
        logger.info(f"Generative provider: openai ({config.OPENAI_MODEL})")
        return OpenAIProvider(config.OPENAI_API_KEY, config.OPENAI_MODEL, timeout, client)

    if choice in ("auto", "anthropic") and config.ANTHROPIC_API_KEY:
        logger.info(f"Generative provider: anthropic ({config.ANTHROPIC_MODEL})")
        return AnthropicProvider(config.ANTHROPIC_API_KEY, config.ANTHROPIC_MODEL, timeout, client)

    if choice != "auto":
        logger.warning(f"GENERATIVE_PROVIDER={choice} but no API key configured; generative enrichment off")
    else:
        logger.info("No generative provider credentials configured; generative enrichment off")
    return None
