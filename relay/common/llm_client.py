"""
Provider-agnostic completion client for Relay agents.

Supports Anthropic, OpenAI, OpenAI-compatible custom endpoints, and Google
Gemini with a shared text-generation interface.
"""

from __future__ import annotations

import hashlib
import logging
from typing import Optional

from .errors import CompletionUnavailableError, ConfigurationError

logger = logging.getLogger("relay.common.llm_client")

SUPPORTED_PROVIDERS = ("anthropic", "openai", "custom", "google")


class LLMClient:
    """Unified text generation client across LLM providers."""

    def __init__(
        self,
        provider: str = "openai",
        model: str = "",
        api_key: Optional[str] = None,
        endpoint: Optional[str] = None,
    ) -> None:
        self.provider = (provider or "openai").lower()
        self.model = model
        self.endpoint = endpoint or None
        self._client = None
        self._google_service = None
        self._google_models = {}  # Cache models by system prompt hash

        if self.provider not in SUPPORTED_PROVIDERS:
            logger.warning("Unsupported LLM provider: %s", self.provider)
            return

        if not api_key:
            logger.info("%s API key not provided, LLM client unavailable", self.provider)
            return

        if self.provider == "anthropic":
            try:
                import anthropic

                self._client = anthropic.Anthropic(api_key=api_key)
            except ImportError:
                logger.warning("anthropic package not installed")
            except Exception as e:
                logger.warning("Failed to initialize Anthropic client: %s", e)
            return

        if self.provider in ("openai", "custom"):
            if self.provider == "custom" and not self.endpoint:
                logger.warning("custom provider requires an endpoint, LLM client unavailable")
                return
            try:
                from openai import OpenAI

                kwargs = {"api_key": api_key}
                if self.endpoint:
                    kwargs["base_url"] = self.endpoint
                self._client = OpenAI(**kwargs)
            except ImportError:
                logger.warning("openai package not installed")
            except Exception as e:
                logger.warning("Failed to initialize OpenAI client: %s", e)
            return

        if self.provider == "google":
            try:
                import google.generativeai as genai
                from google.ai import generativelanguage

                # genai.configure() is process-wide; each client keeps its own key
                self._google_service = generativelanguage.GenerativeServiceClient(
                    client_options={"api_key": api_key}
                )
                self._client = genai  # Store the module, not a model instance
            except ImportError:
                logger.warning("google-generativeai package not installed")
            except Exception as e:
                logger.warning("Failed to initialize Gemini client: %s", e)

    @property
    def is_available(self) -> bool:
        return self._client is not None

    def generate(
        self,
        prompt: str,
        *,
        system: Optional[str] = None,
        temperature: float = 0.3,
        max_tokens: int = 500,
        timeout: float = 60.0,
    ) -> str:
        """
        Send one system + user exchange and return the reply text.

        Raises:
            ConfigurationError: client has no usable credentials/provider
            CompletionUnavailableError: provider failed or returned nothing
        """
        if not self.is_available:
            raise ConfigurationError(
                f"LLM client for provider {self.provider!r} is not available"
            )

        try:
            text = self._generate(prompt, system, temperature, max_tokens, timeout)
        except (ConfigurationError, CompletionUnavailableError):
            raise
        except TimeoutError:
            raise
        except Exception as e:
            logger.warning("%s completion failed: %s", self.provider, e)
            raise CompletionUnavailableError(f"{self.provider} completion failed: {e}") from e

        if not text:
            raise CompletionUnavailableError(f"{self.provider} returned an empty completion")
        return text

    def _generate(
        self,
        prompt: str,
        system: Optional[str],
        temperature: float,
        max_tokens: int,
        timeout: float,
    ) -> str:
        if self.provider == "anthropic":
            kwargs = {
                "model": self.model,
                "max_tokens": max_tokens,
                "temperature": temperature,
                "messages": [{"role": "user", "content": prompt}],
                "timeout": timeout,
            }
            if system:
                kwargs["system"] = system
            response = self._client.messages.create(**kwargs)
            if not response.content:
                return ""
            return (response.content[0].text or "").strip()

        if self.provider in ("openai", "custom"):
            messages = []
            if system:
                messages.append({"role": "system", "content": system})
            messages.append({"role": "user", "content": prompt})
            response = self._client.chat.completions.create(
                model=self.model,
                max_tokens=max_tokens,
                temperature=temperature,
                messages=messages,
                timeout=timeout,
            )
            if not response.choices:
                return ""
            return (response.choices[0].message.content or "").strip()

        if self.provider == "google":
            cache_key = hashlib.md5((system or "").encode()).hexdigest()
            if cache_key not in self._google_models:
                kwargs = {"model_name": self.model}
                if system:
                    kwargs["system_instruction"] = system
                model = self._client.GenerativeModel(**kwargs)
                if self._google_service is not None:
                    model._client = self._google_service
                self._google_models[cache_key] = model
            model = self._google_models[cache_key]
            response = model.generate_content(
                prompt,
                generation_config={
                    "max_output_tokens": max_tokens,
                    "temperature": temperature,
                },
                request_options={"timeout": timeout},
            )
            return (response.text or "").strip()

        raise ConfigurationError(f"Unsupported LLM provider: {self.provider}")
