from abc import ABC, abstractmethod
from typing import Optional, Protocol, Type, TypeVar
import asyncio
import os
import json
import re

import openai
import structlog
from pydantic import BaseModel, ValidationError

from coworker.core.config import settings
from coworker.core.exceptions import ProviderError, ResponseValidationError

logger = structlog.get_logger()

SchemaT = TypeVar("SchemaT", bound=BaseModel)

GROQ_BASE_URL = "https://api.groq.com/openai/v1"


class LLMClientInterface(ABC):
    @abstractmethod
    async def generate(self, prompt: str, system_instruction: Optional[str] = None, json_mode: bool = False) -> str:
        """Generate text from a prompt."""
        pass


class GeminiAdapter(LLMClientInterface):
    """
    Adapter for Google Gemini API using google-generativeai SDK.
    Requires: pip install google-generativeai
    """
    def __init__(self, api_key: str, model_name: str = "gemini-2.0-flash"):
        self.api_key = api_key
        self.model_name = model_name
        self._client = None
        self._model = None

    def _ensure_client(self):
        """Lazy initialization of the Gemini client."""
        if self._client is None:
            try:
                import google.generativeai as genai
                genai.configure(api_key=self.api_key)
                self._client = genai
                self._model = genai.GenerativeModel(self.model_name)
                logger.info("gemini_client_initialized", model=self.model_name)
            except ImportError:
                raise ImportError("google-generativeai package not installed. Run: pip install google-generativeai")

    async def generate(self, prompt: str, system_instruction: Optional[str] = None, json_mode: bool = False) -> str:
        self._ensure_client()

        generation_config = {}
        if json_mode:
            generation_config["response_mime_type"] = "application/json"

        # Combine system instruction with prompt if provided
        full_prompt = prompt
        if system_instruction:
            full_prompt = f"{system_instruction}\n\n{prompt}"

        try:
            response = await self._model.generate_content_async(
                full_prompt,
                generation_config=generation_config if generation_config else None
            )
        except Exception as e:
            logger.error("gemini_generation_error", error=str(e))
            raise

        result_text = response.text
        logger.debug("gemini_response", length=len(result_text))
        return result_text


class OpenAIAdapter(LLMClientInterface):
    """
    Adapter for OpenAI-compatible chat completion APIs using the openai SDK.
    """
    def __init__(self, api_key: str, model_name: str = "gpt-4o-mini", base_url: Optional[str] = None):
        self.api_key = api_key
        self.model_name = model_name
        self.base_url = base_url
        self._client = None

    def _ensure_client(self):
        """Lazy initialization of the async client."""
        if self._client is None:
            self._client = openai.AsyncOpenAI(api_key=self.api_key, base_url=self.base_url)
            logger.info("openai_client_initialized", model=self.model_name, base_url=self.base_url)

    async def generate(self, prompt: str, system_instruction: Optional[str] = None, json_mode: bool = False) -> str:
        self._ensure_client()

        messages = []
        if system_instruction:
            messages.append({"role": "system", "content": system_instruction})
        messages.append({"role": "user", "content": prompt})

        kwargs = {
            "model": self.model_name,
            "messages": messages,
        }

        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        try:
            response = await self._client.chat.completions.create(**kwargs)
        except openai.OpenAIError as e:
            logger.error("openai_generation_error", error=str(e), model=self.model_name)
            raise

        result_text = response.choices[0].message.content or ""
        logger.debug("openai_response", length=len(result_text))
        return result_text


class GroqAdapter(OpenAIAdapter):
    """Groq serves an OpenAI-compatible endpoint."""

    def __init__(self, api_key: str, model_name: str = "llama-3.3-70b-versatile"):
        super().__init__(api_key=api_key, model_name=model_name, base_url=GROQ_BASE_URL)


class LLMFactory:
    @staticmethod
    def create_client(provider: Optional[str] = None, **kwargs) -> LLMClientInterface:
        """
        Factory method to create LLM clients.

        Args:
            provider: "groq", "openai" or "gemini" (defaults to settings.LLM_PROVIDER)
            api_key: Optional API key (defaults to settings / env var)
            model_name: Optional model name override
        """
        provider = (provider or settings.LLM_PROVIDER).lower()
        api_key = kwargs.get("api_key")
        model_name = kwargs.get("model_name") or settings.LLM_MODEL_NAME

        if provider == "groq":
            key = api_key or settings.GROQ_API_KEY or os.getenv("GROQ_API_KEY")
            if not key:
                raise ValueError("GROQ_API_KEY not set")
            return GroqAdapter(
                api_key=key,
                model_name=model_name or "llama-3.3-70b-versatile"
            )
        elif provider == "openai":
            key = api_key or settings.OPENAI_API_KEY or os.getenv("OPENAI_API_KEY")
            if not key:
                raise ValueError("OPENAI_API_KEY not set")
            return OpenAIAdapter(
                api_key=key,
                model_name=model_name or "gpt-4o-mini"
            )
        elif provider == "gemini":
            key = api_key or settings.GEMINI_API_KEY or os.getenv("GEMINI_API_KEY")
            if not key:
                raise ValueError("GEMINI_API_KEY not set")
            return GeminiAdapter(
                api_key=key,
                model_name=model_name or "gemini-2.0-flash"
            )
        else:
            raise ValueError(f"Unknown LLM provider: {provider}")


class CompletionProvider(Protocol):
    """The one capability the conversation engine consumes."""

    async def complete(
        self,
        instructions: str,
        context: str,
        response_schema: Type[SchemaT],
    ) -> SchemaT:  # pragma: no cover - interface
        """
        Return a validated instance of response_schema.

        Raises ProviderError on transport/vendor failure and
        ResponseValidationError when the payload does not match the schema.
        """
        ...


_TRANSIENT_ERRORS = (
    openai.APITimeoutError,
    openai.APIConnectionError,
    openai.RateLimitError,
    openai.InternalServerError,
    ConnectionError,
    TimeoutError,
)


def is_transient_error(error: BaseException) -> bool:
    """Timeouts, dropped connections, rate limits and 5xx are worth a retry."""
    if isinstance(error, ProviderError):
        return error.transient
    if isinstance(error, _TRANSIENT_ERRORS):
        return True
    status_code = getattr(error, "status_code", None) or getattr(error, "code", None)
    return isinstance(status_code, int) and (status_code == 429 or status_code >= 500)


def parse_json_response(response_text: str):
    """Parse JSON from a model reply that may be fenced or wrapped in prose."""
    try:
        return json.loads(response_text)
    except json.JSONDecodeError:
        pass

    match = re.search(r"```(?:json)?\s*([\s\S]*?)```", response_text)
    if match:
        try:
            return json.loads(match.group(1))
        except json.JSONDecodeError:
            pass

    match = re.search(r"\{[\s\S]*\}", response_text)
    if match:
        try:
            return json.loads(match.group())
        except json.JSONDecodeError:
            pass

    return None


class LLMCompletionProvider:
    """
    CompletionProvider backed by an LLMClientInterface.

    Owns the timeout policy and converts vendor exceptions into ProviderError,
    and raw JSON into validated pydantic models. Untyped dicts never leave here.
    """

    def __init__(self, llm_client: LLMClientInterface, timeout_seconds: Optional[float] = None):
        self.llm = llm_client
        self.timeout_seconds = timeout_seconds if timeout_seconds is not None else settings.LLM_REQUEST_TIMEOUT_SECONDS

    async def complete(
        self,
        instructions: str,
        context: str,
        response_schema: Type[SchemaT],
    ) -> SchemaT:
        try:
            raw = await asyncio.wait_for(
                self.llm.generate(context, system_instruction=instructions, json_mode=True),
                timeout=self.timeout_seconds,
            )
        except ProviderError:
            raise
        except asyncio.TimeoutError as e:
            logger.warning("completion_timeout", timeout_seconds=self.timeout_seconds)
            raise ProviderError(
                f"completion timed out after {self.timeout_seconds}s", transient=True
            ) from e
        except Exception as e:
            transient = is_transient_error(e)
            logger.warning(
                "completion_failed",
                error=str(e),
                error_type=type(e).__name__,
                transient=transient,
            )
            raise ProviderError(str(e) or type(e).__name__, transient=transient) from e

        return self.validate(raw, response_schema)

    @staticmethod
    def validate(raw: str, response_schema: Type[SchemaT]) -> SchemaT:
        """Validate a raw reply against the schema."""
        data = parse_json_response(raw or "")
        if not isinstance(data, dict):
            logger.warning("completion_not_json", schema=response_schema.__name__, length=len(raw or ""))
            raise ResponseValidationError(
                f"expected a JSON object for {response_schema.__name__}", raw_response=raw or ""
            )

        try:
            return response_schema.model_validate(data)
        except ValidationError as e:
            logger.warning(
                "completion_schema_mismatch",
                schema=response_schema.__name__,
                errors=e.error_count(),
            )
            raise ResponseValidationError(
                f"{response_schema.__name__} validation failed: {e}", raw_response=raw
            ) from e
