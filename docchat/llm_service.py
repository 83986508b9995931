"""
LLM Service Module

Provides an abstraction layer for Large Language Model providers:
- Cloud: Google Gemini (gemini-1.5-flash) - Default, requires API key
- Cloud: OpenAI (GPT-3.5/4) - Requires API key
- Cloud: Mistral AI - Requires API key
- Local: Ollama (Llama2, Mistral, etc.) - Free, runs locally

Design Rationale:
- Provider chosen once from LLMConfig, callers only see LLMService
- Blocking SDK calls run in the default executor so the event loop stays free
- Transient failures are retried with exponential backoff (tenacity);
  missing credentials are reported at once and never retried
- Every failure leaves this module as ProviderUnavailableError

Usage:
    llm = LLMService(provider="gemini")
    response = await llm.generate("What is machine learning?")

    # With system prompt
    response = await llm.generate(
        prompt="Explain RAG",
        system_prompt="You are an AI expert."
    )
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from functools import partial
from typing import Optional, Dict

from google import genai
from google.genai import types
from tenacity import (
    AsyncRetrying,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from config.settings import get_settings, LLMConfig
from docchat.exceptions import InputError, ProviderUnavailableError

# Configure logging
logger = logging.getLogger(__name__)

# Errors that another attempt cannot fix
NON_RETRYABLE_ERRORS = (ProviderUnavailableError, InputError, ImportError)


@dataclass
class LLMResponse:
    """
    Standardized response from LLM providers.

    Attributes:
        content: The generated text response
        model: Model name used for generation
        usage: Token usage statistics (if available)
        finish_reason: Why generation stopped
    """
    content: str
    model: str
    usage: Optional[Dict[str, int]] = None
    finish_reason: Optional[str] = None

    def __str__(self) -> str:
        return self.content


class BaseLLMProvider(ABC):
    """
    One hosted or local chat model behind a blocking `generate` call.

    Subclasses supply `_create_client` and `generate`; the client is built
    on first use so constructing a provider never touches the network.
    """

    name = "llm"
    requires_api_key = True
    key_variable = ""

    def __init__(self, model: str, api_key: Optional[str] = None):
        self._model = model
        self._api_key = api_key
        self._client = None

        logger.info(f"{type(self).__name__} ready: model={model}")

    @abstractmethod
    def _create_client(self):
        pass

    def _get_client(self):
        if self._client is None:
            if self.requires_api_key and not self._api_key:
                raise ProviderUnavailableError(
                    f"No API key configured, set {self.key_variable}",
                    provider_name=self.name,
                )
            self._client = self._create_client()
            logger.info(f"{self.name} client created for {self._model}")
        return self._client

    @abstractmethod
    def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
    ) -> LLMResponse:
        """
        Run one completion and wait for it.

        Args:
            prompt: Full prompt text
            system_prompt: Instructions passed separately, where supported
            temperature: Sampling temperature
            max_tokens: Output token cap, None for the provider default
        """

    @property
    def is_configured(self) -> bool:
        return not self.requires_api_key or bool(self._api_key)

    @property
    def model_name(self) -> str:
        return self._model

    @staticmethod
    def _build_messages(prompt: str, system_prompt: Optional[str]) -> list:
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})
        return messages

    @staticmethod
    def _token_usage(usage) -> Optional[Dict[str, int]]:
        if usage is None:
            return None
        return {
            "prompt_tokens": usage.prompt_tokens,
            "completion_tokens": usage.completion_tokens,
            "total_tokens": usage.total_tokens,
        }


class GeminiProvider(BaseLLMProvider):
    """Google Gemini through google-genai."""

    name = "gemini"
    key_variable = "GEMINI_API_KEY"

    def __init__(self, model: str = "gemini-1.5-flash", api_key: Optional[str] = None):
        super().__init__(model, api_key)

    def _create_client(self):
        return genai.Client(api_key=self._api_key)

    def generate(self, prompt, system_prompt=None, temperature=0.7, max_tokens=None):
        config = types.GenerateContentConfig(
            temperature=temperature,
            system_instruction=system_prompt or None,
        )
        if max_tokens:
            config.max_output_tokens = max_tokens

        response = self._get_client().models.generate_content(
            model=self._model,
            contents=prompt,
            config=config,
        )
        # .text is None when the candidate was blocked or empty
        return LLMResponse(content=response.text or "", model=self._model, finish_reason="stop")


class OpenAIProvider(BaseLLMProvider):
    """OpenAI chat completions."""

    name = "openai"
    key_variable = "OPENAI_API_KEY"

    def __init__(self, model: str = "gpt-3.5-turbo", api_key: Optional[str] = None):
        super().__init__(model, api_key)

    def _create_client(self):
        from openai import OpenAI
        return OpenAI(api_key=self._api_key)

    def generate(self, prompt, system_prompt=None, temperature=0.7, max_tokens=None):
        request = {
            "model": self._model,
            "messages": self._build_messages(prompt, system_prompt),
            "temperature": temperature,
        }
        if max_tokens:
            request["max_tokens"] = max_tokens

        response = self._get_client().chat.completions.create(**request)
        choice = response.choices[0]
        return LLMResponse(
            content=choice.message.content or "",
            model=response.model,
            usage=self._token_usage(response.usage),
            finish_reason=choice.finish_reason,
        )


class OllamaProvider(BaseLLMProvider):
    """Self-hosted models on an Ollama server; needs no key."""

    name = "ollama"
    requires_api_key = False

    def __init__(self, model: str = "llama2", base_url: str = "http://localhost:11434"):
        self._base_url = base_url.rstrip("/")
        super().__init__(model)

    def _create_client(self):
        import ollama
        return ollama.Client(host=self._base_url)

    def generate(self, prompt, system_prompt=None, temperature=0.7, max_tokens=None):
        options = {"temperature": temperature}
        if max_tokens:
            options["num_predict"] = max_tokens

        response = self._get_client().chat(
            model=self._model,
            messages=self._build_messages(prompt, system_prompt),
            options=options,
        )
        return LLMResponse(
            content=response["message"]["content"] or "",
            model=self._model,
            usage={
                "prompt_tokens": response.get("prompt_eval_count", 0),
                "completion_tokens": response.get("eval_count", 0),
            },
            finish_reason="stop",
        )


class MistralProvider(BaseLLMProvider):
    """Mistral AI chat API."""

    name = "mistral"
    key_variable = "MISTRAL_API_KEY"

    def __init__(self, model: str = "mistral-small-latest", api_key: Optional[str] = None):
        super().__init__(model, api_key)

    def _create_client(self):
        from mistralai import Mistral
        return Mistral(api_key=self._api_key)

    def generate(self, prompt, system_prompt=None, temperature=0.7, max_tokens=None):
        response = self._get_client().chat.complete(
            model=self._model,
            messages=self._build_messages(prompt, system_prompt),
            temperature=temperature,
            max_tokens=max_tokens,
        )
        choice = response.choices[0]
        return LLMResponse(
            content=choice.message.content or "",
            model=self._model,
            usage=self._token_usage(response.usage),
            finish_reason=choice.finish_reason,
        )


class LLMService:
    """
    Async front for the configured chat model.

    The provider is picked once from LLMConfig; RAGChain only talks to this
    class, never to a provider directly.

    Example:
        llm = LLMService(provider="ollama")
        response = await llm.generate(prompt)
    """

    def __init__(
        self,
        provider: Optional[str] = None,
        config: Optional[LLMConfig] = None,
        llm_provider: Optional[BaseLLMProvider] = None,
    ):
        """
        Initialize the LLM service.

        Args:
            provider: "gemini", "openai", "ollama", or "mistral" (default from config)
            config: Optional LLMConfig instance
            llm_provider: Ready-made provider, bypasses selection
        """
        self.config = config or get_settings().llm

        provider = provider or self.config.provider

        if llm_provider is not None:
            self._provider = llm_provider
        elif provider == "gemini":
            self._provider = GeminiProvider(
                model=self.config.gemini_model,
                api_key=self.config.gemini_api_key,
            )
        elif provider == "openai":
            self._provider = OpenAIProvider(
                model=self.config.openai_model,
                api_key=self.config.openai_api_key,
            )
        elif provider == "ollama":
            self._provider = OllamaProvider(
                model=self.config.ollama_model,
                base_url=self.config.ollama_base_url,
            )
        elif provider == "mistral":
            self._provider = MistralProvider(
                model=self.config.mistral_model,
                api_key=self.config.mistral_api_key,
            )
        else:
            raise InputError(f"Unknown LLM provider: {provider}")

        self._provider_name = provider

        if not self._provider.is_configured:
            logger.warning(
                f"LLM provider {provider} is not configured; "
                f"answers will fall back to raw search results"
            )
        logger.info(f"LLMService initialized with {provider} provider")

    def _retrying(self) -> AsyncRetrying:
        attempts = max(1, self.config.max_retries)
        initial = self.config.retry_initial_wait
        return AsyncRetrying(
            retry=retry_if_not_exception_type(NON_RETRYABLE_ERRORS),
            stop=stop_after_attempt(attempts),
            wait=wait_exponential_jitter(initial=initial, max=30, jitter=initial),
            before_sleep=lambda retry_state: logger.warning(
                f"{self._provider_name} generation failed "
                f"({retry_state.outcome.exception()}), "
                f"retry {retry_state.attempt_number}/{attempts}"
            ),
            reraise=True,
        )

    async def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> LLMResponse:
        """
        Run one completion off the event loop, retrying transient failures.

        temperature and max_tokens default to the LLMConfig values.

        Raises:
            ProviderUnavailableError: Missing credentials, or every attempt failed
        """
        call = partial(
            self._provider.generate,
            prompt=prompt,
            system_prompt=system_prompt,
            temperature=self.config.temperature if temperature is None else temperature,
            max_tokens=max_tokens or self.config.max_tokens,
        )
        loop = asyncio.get_running_loop()

        try:
            async for attempt in self._retrying():
                with attempt:
                    response = await loop.run_in_executor(None, call)
        except ProviderUnavailableError:
            raise
        except Exception as e:
            logger.error(f"{self._provider_name} generation error: {e}")
            raise ProviderUnavailableError(
                f"Generation failed: {e}", provider_name=self._provider_name
            ) from e

        logger.debug(
            f"Generated {len(response.content)} chars with {self._provider.model_name}"
        )
        return response

    @property
    def is_configured(self) -> bool:
        """Whether the selected provider has the credentials it needs."""
        return self._provider.is_configured

    @property
    def model_name(self) -> str:
        return self._provider.model_name

    @property
    def provider_name(self) -> str:
        return self._provider_name
