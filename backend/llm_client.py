"""Clients for the generative AI services that read the resume."""
import asyncio
import json
import threading
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional, Union

import google.generativeai as genai
import httpx
import ollama
from google.api_core import exceptions as google_exceptions
from loguru import logger

from backend.config import Settings
from backend.exceptions import ConfigurationError, ResponseParseError, TransientAnalysisError
from backend.pdf_renderer import render_pdf
from backend.upload import parse_data_url

GenerationOutput = Union[Dict[str, Any], str]

NOT_CONFIGURED = "Salary analysis service is not properly configured"


class LLMClient(ABC):
    """
    A generative model that can read an attached document.

    `generate` returns a dict when the service enforced the output schema,
    or raw text that still has to be parsed as JSON.
    """

    provider: str = ""
    supports_schema: bool = False

    def __init__(self, model_name: str):
        self.model_name = model_name

    @abstractmethod
    async def generate(
        self,
        prompt: str,
        media_url: str,
        schema: Optional[Dict[str, Any]] = None
    ) -> GenerationOutput:
        """Run one generation over the document in `media_url`."""


class GeminiClient(LLMClient):
    """Google Gemini with native PDF input and schema-constrained JSON output."""

    provider = "gemini"
    supports_schema = True

    def __init__(
        self,
        api_key: str,
        model_name: str = "gemini-2.0-flash",
        project_id: Optional[str] = None,
        temperature: float = 0.2
    ):
        if not api_key:
            raise ConfigurationError(f"{NOT_CONFIGURED}: GOOGLE_API_KEY is not set")
        super().__init__(model_name)
        self.project_id = project_id
        self.temperature = temperature
        genai.configure(api_key=api_key)
        self.model = genai.GenerativeModel(model_name)
        logger.info(f"Gemini client ready: model={model_name}, project={project_id}")

    async def generate(
        self,
        prompt: str,
        media_url: str,
        schema: Optional[Dict[str, Any]] = None
    ) -> GenerationOutput:
        mime_type, data = parse_data_url(media_url)
        # Run blocking SDK call in thread pool to not block event loop
        return await asyncio.to_thread(self._generate_sync, prompt, mime_type, data, schema)

    def _generation_config(self, schema: Optional[Dict[str, Any]]) -> genai.types.GenerationConfig:
        if schema is None:
            return genai.types.GenerationConfig(temperature=self.temperature)
        return genai.types.GenerationConfig(
            temperature=self.temperature,
            response_mime_type="application/json",
            response_schema=schema
        )

    def _generate_sync(
        self,
        prompt: str,
        mime_type: str,
        data: bytes,
        schema: Optional[Dict[str, Any]]
    ) -> GenerationOutput:
        try:
            response = self.model.generate_content(
                [{"mime_type": mime_type, "data": data}, prompt],
                generation_config=self._generation_config(schema)
            )
        except (google_exceptions.Unauthenticated, google_exceptions.PermissionDenied) as e:
            raise ConfigurationError(f"{NOT_CONFIGURED}: credentials rejected") from e
        except google_exceptions.InvalidArgument as e:
            if "api key" in str(e).lower():
                raise ConfigurationError(f"{NOT_CONFIGURED}: invalid API key") from e
            raise TransientAnalysisError(f"Gemini rejected the request: {e}", status_code=e.code) from e
        except google_exceptions.GoogleAPICallError as e:
            raise TransientAnalysisError(f"Gemini API error: {e}", status_code=e.code) from e
        except (google_exceptions.GoogleAPIError, ConnectionError) as e:
            raise TransientAnalysisError(f"Gemini API unreachable: {e}") from e

        try:
            text = response.text
        except ValueError as e:
            # No candidate parts, e.g. blocked by safety filters
            raise TransientAnalysisError(f"Empty response from Gemini: {e}") from e
        if not text:
            raise TransientAnalysisError("Empty response from Gemini")

        if schema is None:
            return text
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError as e:
            raise ResponseParseError(f"Gemini returned invalid JSON: {e}") from e
        if not isinstance(parsed, dict):
            raise ResponseParseError("Gemini returned a non-object JSON value")
        return parsed


class OllamaClient(LLMClient):
    """Local Ollama model. Text in, text out; PDFs are sent as text or page images."""

    provider = "ollama"
    supports_schema = False

    def __init__(
        self,
        model_name: str = "llama3.2-vision",
        host: Optional[str] = None,
        quality: str = "base",
        max_pages: int = 10,
        temperature: float = 0.0,
        num_predict: int = 4096
    ):
        super().__init__(model_name)
        self.quality = quality
        self.max_pages = max_pages
        self.temperature = temperature
        self.num_predict = num_predict
        self._client = ollama.Client(host=host)

    def _build_message(self, prompt: str, data: bytes) -> Dict[str, Any]:
        document = render_pdf(data, quality=self.quality, max_pages=self.max_pages)
        if document.text:
            return {
                "role": "user",
                "content": f"{prompt}\n\nResume Text:\n{document.text}"
            }
        return {
            "role": "user",
            "content": f"{prompt}\n\nThe resume pages are attached as images.",
            "images": document.images
        }

    async def generate(
        self,
        prompt: str,
        media_url: str,
        schema: Optional[Dict[str, Any]] = None
    ) -> GenerationOutput:
        _, data = parse_data_url(media_url)
        message = await asyncio.to_thread(self._build_message, prompt, data)

        try:
            response = await asyncio.to_thread(
                self._client.chat,
                model=self.model_name,
                messages=[message],
                options={"temperature": self.temperature, "num_predict": self.num_predict}
            )
        except ollama.ResponseError as e:
            if e.status_code == 404:
                raise ConfigurationError(f"{NOT_CONFIGURED}: model {self.model_name} not found") from e
            raise TransientAnalysisError(f"Ollama error: {e.error}", status_code=e.status_code) from e
        except (ConnectionError, httpx.HTTPError) as e:
            raise TransientAnalysisError(f"Ollama unreachable: {e}") from e

        result = response["message"]["content"] or ""
        logger.info(f"LLM response length: {len(result)} chars")
        # Sanitize for UTF-8 compatibility
        return result.encode("utf-8", errors="replace").decode("utf-8")


def create_llm_client(settings: Settings) -> LLMClient:
    """Build the client for the configured provider."""
    provider = settings.llm_provider.lower()
    if provider == "gemini":
        return GeminiClient(
            api_key=settings.google_api_key,
            model_name=settings.gemini_model,
            project_id=settings.google_project_id,
            temperature=settings.llm_temperature
        )
    if provider == "ollama":
        return OllamaClient(
            model_name=settings.ollama_model,
            host=settings.ollama_host,
            quality=settings.render_quality,
            max_pages=settings.max_pages,
            temperature=settings.llm_temperature
        )
    raise ConfigurationError(f"{NOT_CONFIGURED}: unknown LLM provider '{settings.llm_provider}'")


class ClientHandle:
    """
    Process-wide, lazily built LLM client.

    The factory runs at most once successfully; a failed build caches nothing,
    so the next call tries again.
    """

    def __init__(self, factory: Callable[[], LLMClient]):
        self._factory = factory
        self._client: Optional[LLMClient] = None
        self._lock = threading.Lock()

    @classmethod
    def of(cls, client: LLMClient) -> "ClientHandle":
        handle = cls(lambda: client)
        handle._client = client
        return handle

    def get(self) -> LLMClient:
        client = self._client
        if client is not None:
            return client
        with self._lock:
            if self._client is None:
                self._client = self._factory()
            return self._client

    def is_ready(self) -> bool:
        return self._client is not None
