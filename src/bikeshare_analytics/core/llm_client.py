"""
LLM client for Groq's OpenAI-compatible chat completions API.

Used only for advisory slot extraction: every failure returns None so callers
fall back to keyword heuristics.
"""

import requests
import structlog

from bikeshare_analytics.core.nl_query_config import (
    GROQ_API_KEY,
    GROQ_BASE_URL,
    GROQ_MAX_TOKENS,
    GROQ_MODEL,
    GROQ_TEMPERATURE,
    SLOT_EXTRACTION_TIMEOUT_SECONDS,
)

logger = structlog.get_logger()


class GroqClient:
    """
    Client for the Groq chat completions endpoint.

    Provides credential/connection checks and single-shot completions.
    All requests time out after SLOT_EXTRACTION_TIMEOUT_SECONDS by default.
    """

    def __init__(
        self,
        api_key: str | None = GROQ_API_KEY,
        model: str = GROQ_MODEL,
        base_url: str = GROQ_BASE_URL,
        timeout: float = SLOT_EXTRACTION_TIMEOUT_SECONDS,
        temperature: float = GROQ_TEMPERATURE,
        max_tokens: int = GROQ_MAX_TOKENS,
    ):
        """
        Initialize Groq client.

        Args:
            api_key: Bearer token; without one the client reports unavailable
            model: Model name (default: llama3-8b-8192)
            base_url: API root, without the /chat/completions suffix
            timeout: Request timeout in seconds
            temperature: Sampling temperature
            max_tokens: Completion token cap
        """
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._connection_checked = False
        self._is_available = False

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    def is_available(self) -> bool:
        """
        Check if the service can be called.

        Returns:
            True if credentials exist and the API answered, False otherwise
        """
        if not self.api_key:
            return False

        if self._connection_checked:
            return self._is_available

        self._is_available = self._check_connection()
        self._connection_checked = True
        return self._is_available

    def _check_connection(self) -> bool:
        try:
            response = requests.get(f"{self.base_url}/models", headers=self._headers(), timeout=self.timeout)
            return response.status_code == 200
        except requests.RequestException as e:
            logger.warning(
                "groq_connection_failed",
                error=str(e),
                base_url=self.base_url,
            )
            return False

    def complete(self, prompt: str, system_prompt: str | None = None) -> str | None:
        """
        Request a single chat completion.

        Args:
            prompt: User message
            system_prompt: Optional system message

        Returns:
            Assistant message text, or None on error/timeout
        """
        if not self.is_available():
            logger.warning("groq_not_available", model=self.model)
            return None

        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        try:
            response = requests.post(
                f"{self.base_url}/chat/completions",
                headers=self._headers(),
                json={
                    "model": self.model,
                    "messages": messages,
                    "temperature": self.temperature,
                    "max_tokens": self.max_tokens,
                },
                timeout=self.timeout,
            )

            if response.status_code != 200:
                logger.warning(
                    "groq_completion_failed",
                    status_code=response.status_code,
                    model=self.model,
                )
                return None

            result = response.json()
            return result["choices"][0]["message"]["content"]

        except requests.Timeout:
            logger.warning(
                "groq_timeout",
                timeout_seconds=self.timeout,
                model=self.model,
            )
            return None
        except (requests.RequestException, ValueError, KeyError, IndexError, TypeError) as e:
            logger.warning(
                "groq_completion_error",
                error=str(e),
                model=self.model,
            )
            return None
