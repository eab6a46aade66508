"""Salary analysis with bounded retries around the LLM call."""
import asyncio
import json
from typing import Any, Dict, Optional
from loguru import logger
from pydantic import ValidationError

from backend.config import TEMPLATES_DIR, settings
from backend.exceptions import (
    AnalysisError,
    ConfigurationError,
    SchemaValidationError,
    TransientAnalysisError,
)
from backend.llm_client import ClientHandle, LLMClient
from backend.models import SalaryAnalysis, SalaryAnalysisResponse
from backend.response_parser import parse_json_object

CONFIGURATION_ERROR = "Salary analysis service is not configured correctly."
ANALYSIS_FAILED = "Failed to analyze your resume after multiple attempts. Please try again later."


class SalaryAnalyzer:
    """Estimate a Swedish monthly salary from a resume using an LLM."""

    def __init__(self, client_handle: ClientHandle, template: str = "salary_analysis"):
        self._client_handle = client_handle
        self._template = template
        self._instruction, self._schema_text = self._load_template(template)
        self._schema: Dict[str, Any] = json.loads(self._schema_text)

    @staticmethod
    def _load_template(template_id: str) -> tuple[str, str]:
        """Load the instruction text and output schema for a template ID."""
        prompt_path = TEMPLATES_DIR / f"{template_id}.txt"
        schema_path = TEMPLATES_DIR / f"{template_id}.json"
        return (
            prompt_path.read_text(encoding="utf-8").strip(),
            schema_path.read_text(encoding="utf-8"),
        )

    def build_prompt(self, client: LLMClient) -> str:
        """Instruction for one attempt; embeds the schema when the client cannot enforce it."""
        if client.supports_schema:
            return self._instruction

        return f"""{self._instruction}

JSON Schema:
{self._schema_text}

Return ONLY the JSON object, without markdown formatting or additional text:"""

    async def _attempt(self, client: LLMClient, payload: str) -> SalaryAnalysis:
        schema = self._schema if client.supports_schema else None
        raw = await client.generate(self.build_prompt(client), payload, schema=schema)
        data = raw if isinstance(raw, dict) else parse_json_object(raw)

        try:
            return SalaryAnalysis.model_validate(data)
        except ValidationError as e:
            raise SchemaValidationError(f"Response does not match schema: {e}") from e

    async def analyze(
        self,
        payload: str,
        max_retries: Optional[int] = None,
        retry_delay_ms: Optional[int] = None
    ) -> SalaryAnalysisResponse:
        """
        Analyze an encoded resume, retrying failed attempts.

        Every failed attempt spends one unit of `max_retries` and is followed by
        a constant `retry_delay_ms` pause. Configuration errors are returned at
        once. When the budget is spent, a zeroed result flagged with an error is
        returned instead of raising. Both limits default to the configured
        `settings.max_retries` and `settings.retry_delay_ms`.
        """
        if max_retries is None:
            max_retries = settings.max_retries
        if retry_delay_ms is None:
            retry_delay_ms = settings.retry_delay_ms

        retries_left = max_retries
        attempt = 0

        while True:
            attempt += 1
            try:
                client = self._client_handle.get()
                logger.info(f"Analyzing salary with {client.provider}:{client.model_name} (attempt {attempt})")
                analysis = await self._attempt(client, payload)
            except ConfigurationError as e:
                logger.error(f"Configuration error, not retrying: {e}")
                return SalaryAnalysisResponse.fallback(CONFIGURATION_ERROR, "configuration")
            except AnalysisError as e:
                status = e.status_code if isinstance(e, TransientAnalysisError) else None
                if status is not None:
                    logger.error(f"Attempt {attempt} failed (service status {int(status)}): {e}")
                else:
                    logger.error(f"Attempt {attempt} failed: {e}")
                if retries_left <= 0:
                    break
                logger.warning(f"Retrying... ({retries_left} attempts left)")
                retries_left -= 1
                await asyncio.sleep(retry_delay_ms / 1000)
                continue

            logger.info(
                f"Analysis successful: {analysis.estimated_salary:.0f} SEK, "
                f"{analysis.experience.level.value}, demand {analysis.market_demand.level.value}"
            )
            return SalaryAnalysisResponse(**analysis.model_dump())

        logger.error(f"All {attempt} attempts failed, returning fallback result")
        return SalaryAnalysisResponse.fallback(ANALYSIS_FAILED, "analysis_failed")
