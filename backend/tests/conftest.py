import fitz
import pytest

from backend.llm_client import LLMClient


VALID_ANALYSIS = {
    "estimatedSalary": 52000,
    "experience": {
        "level": "Mid-level",
        "years": 5,
        "keySkills": ["Python", "FastAPI", "PostgreSQL"],
    },
    "marketDemand": {
        "level": "High",
        "reasons": ["Growing tech sector in Stockholm"],
    },
    "location": "Stockholm",
    "industry": "Technology",
    "salaryFactors": ["Strong backend experience"],
    "considerations": ["Company size"],
    "confidenceScore": 0.8,
}


class StubClient(LLMClient):
    """Replays scripted outcomes: exceptions are raised, anything else is returned."""

    provider = "stub"

    def __init__(self, outcomes, supports_schema=False):
        super().__init__("stub-model")
        self.supports_schema = supports_schema
        self.outcomes = list(outcomes)
        self.calls = []

    async def generate(self, prompt, media_url, schema=None):
        self.calls.append({"prompt": prompt, "media_url": media_url, "schema": schema})
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


@pytest.fixture()
def text_pdf_bytes() -> bytes:
    """Single-page PDF with a real text layer."""
    doc = fitz.open()
    page = doc.new_page()
    for i in range(30):
        page.insert_text((72, 72 + i * 20), f"Line {i}: Senior Python developer with FastAPI and AWS.")
    data = doc.tobytes()
    doc.close()
    return data


@pytest.fixture()
def blank_pdf_bytes() -> bytes:
    """PDF without any text, treated like a scan."""
    doc = fitz.open()
    doc.new_page()
    data = doc.tobytes()
    doc.close()
    return data
