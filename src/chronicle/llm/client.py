"""Ollama LLM client wrapper with retry logic and schema-constrained output."""

import logging
from typing import Any

import ollama

from src.chronicle.config import settings

logger = logging.getLogger(__name__)


class OllamaClient:
    """Client wrapper for Ollama LLM interactions.

    Provides a small blocking interface for getting text out of a local model,
    with built-in retries. Callers that want JSON pass a JSON schema, which
    Ollama uses to constrain the output; parsing stays with the caller.

    Example:
        >>> client = OllamaClient(model_name="gemma2:2b")
        >>> text = client.generate("Does 'I board the ship' match 'boards the ghost ship'?")
    """

    MAX_RETRIES = 3

    def __init__(
        self,
        model_name: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        temperature: float = 0.0,
    ):
        """Initialize the Ollama client.

        Args:
            model_name: The model to use. Defaults to settings.relevance_model.
            base_url: Ollama server URL. Defaults to settings.ollama_host.
            timeout: Request timeout in seconds. Defaults to settings.relevance_timeout.
            temperature: Sampling temperature. Relevance checks want 0.
        """
        self.model_name = model_name or settings.relevance_model
        self.base_url = base_url or settings.ollama_host
        self.timeout = timeout or settings.relevance_timeout
        self.temperature = temperature

        self._client = ollama.Client(host=self.base_url, timeout=self.timeout)

        logger.debug(
            "Initialized OllamaClient with model=%s, base_url=%s, timeout=%s",
            self.model_name,
            self.base_url,
            self.timeout,
        )

    def health_check(self) -> bool:
        """Check if Ollama server is available and the model is pulled.

        Returns:
            True if the server answers and lists the model, False otherwise.
        """
        try:
            models = self._client.list()
        except (ollama.ResponseError, ConnectionError) as e:
            logger.error("Health check failed: %s", e)
            return False

        model_names = [m.model for m in models["models"]]
        model_base = self.model_name.split(":")[0]
        is_available = any(
            self.model_name == name or name.startswith(model_base)
            for name in model_names
        )
        if is_available:
            logger.debug("Health check passed. Model %s is available.", self.model_name)
        else:
            logger.warning("Model %s not found. Available models: %s", self.model_name, model_names)
        return is_available

    def generate(
        self,
        prompt: str,
        system: str | None = None,
        json_schema: dict[str, Any] | None = None,
    ) -> str:
        """Generate a response from the LLM.

        Args:
            prompt: The user prompt to send.
            system: Optional system prompt for context.
            json_schema: Optional JSON schema the output must follow.

        Returns:
            The raw response text.

        Raises:
            ollama.ResponseError: If the LLM request fails after all retries.
        """
        logger.debug(
            "generate() called - prompt_len=%d, system=%s, structured=%s",
            len(prompt),
            "yes" if system else "no",
            "yes" if json_schema else "no",
        )

        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        for attempt in range(1, self.MAX_RETRIES + 1):
            try:
                logger.debug("Generation attempt %d/%d", attempt, self.MAX_RETRIES)
                response = self._client.chat(
                    model=self.model_name,
                    messages=messages,
                    format=json_schema,
                    options={"temperature": self.temperature},
                )
            except (ollama.ResponseError, ConnectionError) as e:
                logger.warning("Attempt %d failed: %s", attempt, e)
                if attempt == self.MAX_RETRIES:
                    raise
                continue

            content = response["message"]["content"]
            logger.debug("Response received - length=%d", len(content))
            return content

        raise RuntimeError("Generation failed after all retries")
