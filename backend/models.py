"""Pydantic models for salary analysis data."""
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import Optional, List


class ExperienceLevel(str, Enum):
    JUNIOR = "Junior"
    MID_LEVEL = "Mid-level"
    SENIOR = "Senior"


class MarketDemandLevel(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class CamelModel(BaseModel):
    """Accepts snake_case or camelCase input, serializes as camelCase."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Experience(CamelModel):
    """Candidate experience classification."""
    level: ExperienceLevel
    years: float = Field(ge=0)
    key_skills: List[str] = Field(default_factory=list)


class MarketDemand(CamelModel):
    """Demand for the candidate's profile on the Swedish market."""
    level: MarketDemandLevel
    reasons: List[str] = Field(default_factory=list)


class SalaryAnalysis(CamelModel):
    """Structured salary estimate returned by the LLM."""
    estimated_salary: float = Field(ge=0)  # SEK per month
    experience: Experience
    market_demand: MarketDemand
    location: str
    industry: str
    salary_factors: List[str] = Field(default_factory=list)
    considerations: List[str] = Field(default_factory=list)
    confidence_score: float = Field(ge=0, le=1)


class SalaryAnalysisResponse(SalaryAnalysis):
    """Analysis as returned to the UI, optionally flagged with an error."""
    currency: str = "SEK"
    salary_timeframe: str = "monthly"
    error: Optional[str] = None
    error_code: Optional[str] = None

    @classmethod
    def fallback(cls, error: str, error_code: str) -> "SalaryAnalysisResponse":
        """Zeroed result carrying an error message instead of an estimate."""
        return cls(
            estimated_salary=0,
            experience=Experience(level=ExperienceLevel.JUNIOR, years=0),
            market_demand=MarketDemand(level=MarketDemandLevel.MEDIUM),
            location="",
            industry="",
            confidence_score=0,
            error=error,
            error_code=error_code,
        )


class ErrorResponse(BaseModel):
    """Error body for rejected requests."""
    error: str


class HealthResponse(CamelModel):
    """Health check response."""
    status: str
    provider: str
    model: str
    llm_configured: bool
    ram_total: int
    ram_used: int
