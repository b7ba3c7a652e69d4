"""HTTP clients for the external text-generation service."""

import asyncio
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

import httpx
from httpx import HTTPStatusError, TimeoutException

from sopforge.core.config import LLMSettings
from sopforge.core.exceptions import APIClientError, APITimeoutError, ConfigurationError
from sopforge.utils.logging import get_logger

LOGGER = get_logger(__name__)


class LLMProvider(str, Enum):
    """Supported text-generation providers."""
    NONE = "none"
    OPENROUTER = "openrouter"
    OPENAI = "openai"


DEFAULT_API_URLS = {
    LLMProvider.OPENROUTER: "https://openrouter.ai/api/v1/chat/completions",
    LLMProvider.OPENAI: "https://api.openai.com/v1/chat/completions",
}


class BaseLLMClient:
    """Base client for the text-generation HTTP API.

    Every request gets at most ``max_retries`` attempts. Rate limiting,
    server errors, timeouts and transport failures are retried with
    exponential backoff; other 4xx answers fail immediately.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str,
        timeout: int = 60,
        max_retries: int = 1,
        retry_delay: int = 2,
    ):
        """Initialize the client.

        Args:
            api_key: Bearer token sent with every request
            base_url: Endpoint URL requests are posted to
            timeout: Per-request timeout in seconds
            max_retries: Total number of attempts, at least one
            retry_delay: Seconds to wait after the first failed attempt
        """
        self.api_key = api_key
        self.base_url = base_url
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay
        self.logger = LOGGER

    async def call_api(
        self,
        endpoint: str = "",
        payload: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        """POST a JSON payload and return the parsed JSON response.

        Raises:
            APIClientError: If the request fails on every attempt
            APITimeoutError: If the last attempt timed out
        """
        url = f"{self.base_url}{endpoint}" if endpoint else self.base_url
        request_headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            **(headers or {}),
        }

        self.logger.debug(f"POST {url}", extra={"timeout": self.timeout})

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            for attempt in range(1, self.max_retries + 1):
                try:
                    response = await client.post(url, headers=request_headers, json=payload)
                    response.raise_for_status()
                    return response.json()
                except (httpx.HTTPError, ValueError) as e:
                    retryable, failure = self._describe_failure(e)
                    self.logger.warning(
                        f"Text-generation request failed (attempt {attempt}/{self.max_retries}): {failure}",
                        extra={"url": url},
                    )
                    if not retryable or attempt == self.max_retries:
                        raise failure from e
                    await self._wait_before_retry(attempt - 1)

        raise APIClientError(f"No attempt was made to call {url}")

    def _describe_failure(self, error: Exception) -> Tuple[bool, APIClientError]:
        """Map a request error to (worth retrying, error to raise)."""
        if isinstance(error, HTTPStatusError):
            status_code = error.response.status_code
            body = error.response.text[:500]
            retryable = status_code == 429 or status_code >= 500
            return retryable, APIClientError(f"HTTP {status_code} from API: {body}", original_error=error)
        if isinstance(error, TimeoutException):
            return True, APITimeoutError(
                f"Request timed out after {self.timeout}s", original_error=error
            )
        return True, APIClientError(f"API request error: {error}", original_error=error)

    async def _wait_before_retry(self, attempt: int):
        """Sleep ``retry_delay * 2**attempt`` seconds."""
        await asyncio.sleep(self.retry_delay * (2 ** attempt))


class ChatCompletionClient(BaseLLMClient):
    """Client for OpenAI-compatible chat-completions endpoints (OpenAI, OpenRouter)."""

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str = DEFAULT_API_URLS[LLMProvider.OPENROUTER],
        timeout: int = 60,
        max_retries: int = 1,
        temperature: float = 0.4,
        max_tokens: int = 4000,
    ):
        super().__init__(api_key=api_key, base_url=base_url, timeout=timeout, max_retries=max_retries)
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        LOGGER.info(f"Initialized chat-completion client (model: {model})")

    async def generate_content(
        self,
        contents: Union[str, List[str]],
        system_instruction: Optional[str] = None,
        generation_config: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Generate content with the configured model.

        Args:
            contents: User content (string or list of strings joined by blank lines)
            system_instruction: Optional system instruction
            generation_config: Optional overrides (temperature, max_tokens, response_format)

        Returns:
            Generated text response

        Raises:
            APIClientError: If generation fails or the response has no content
        """
        if isinstance(contents, list):
            contents = "\n\n".join(str(part) for part in contents)

        messages = []
        if system_instruction:
            messages.append({"role": "system", "content": system_instruction})
        messages.append({"role": "user", "content": contents})

        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "response_format": {"type": "json_object"},
        }
        if generation_config:
            payload.update(generation_config)

        result = await self.call_api(payload=payload)

        try:
            content = result["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise APIClientError(f"Unexpected API response format: {e}", original_error=e) from e

        if not content:
            raise APIClientError("Text-generation service returned empty content")
        return content.strip()


def create_llm_client_from_settings(llm_settings: LLMSettings) -> Optional[ChatCompletionClient]:
    """Create a text-generation client from configuration.

    Returns None when no provider is configured, which makes the stages use
    their rule-based generators.

    Raises:
        ConfigurationError: If a provider is selected but the settings are incomplete
    """
    try:
        provider = LLMProvider(llm_settings.provider.lower())
    except ValueError as e:
        raise ConfigurationError(f"Unsupported LLM provider: {llm_settings.provider}", original_error=e) from e

    if provider == LLMProvider.NONE:
        LOGGER.info("No text-generation provider configured, rule-based generation only")
        return None

    if not llm_settings.api_key:
        raise ConfigurationError(f"LLM_API_KEY is required for provider '{provider.value}'")

    base_url = llm_settings.api_url
    if provider == LLMProvider.OPENAI and base_url == DEFAULT_API_URLS[LLMProvider.OPENROUTER]:
        base_url = DEFAULT_API_URLS[LLMProvider.OPENAI]

    return ChatCompletionClient(
        api_key=llm_settings.api_key,
        model=llm_settings.model,
        base_url=base_url,
        timeout=llm_settings.timeout_seconds,
        max_retries=llm_settings.max_retries,
        temperature=llm_settings.temperature,
        max_tokens=llm_settings.max_tokens,
    )
