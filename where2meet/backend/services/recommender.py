"""Meeting location recommendation generator."""
import logging
from abc import ABC, abstractmethod
from typing import Callable
from where2meet.backend.core.errors import GenerationFailedError
from where2meet.backend.schemas.ai import (
    GenerationRequest,
    GenerationResponse,
    GeneratedRecommendation,
    LLMRecommendationPayload,
)
from where2meet.backend.services.llm import (
    LLMClient,
    MissingCredentialsError,
    get_llm_client,
    LOCATION_SYSTEM_PROMPT,
    LOCATION_USER_PROMPT,
    PURPOSE_DESCRIPTIONS,
)

logger = logging.getLogger(__name__)

# Codes the generator lets through instead of substituting the fallback set
PROPAGATED_CODES = {"NO_API_KEY", "INVALID_ADDRESSES", "NO_RESULTS"}


class RecommendationGenerator(ABC):
    """Turns event metadata and participant addresses into ranked locations."""

    @abstractmethod
    async def generate(self, request: GenerationRequest) -> GenerationResponse:
        """
        Produce three ranked candidate locations.

        Raises:
            GenerationFailedError: For missing credentials, invalid input
                flagged by the model, or an empty result
        """


def build_prompt(request: GenerationRequest) -> str:
    """Render the user prompt for a generation request."""
    participant_lines = "\n".join(
        f"- {p.nickname}: {p.address}" for p in request.participants
    )
    return LOCATION_USER_PROMPT.format(
        title=request.title,
        purpose=PURPOSE_DESCRIPTIONS.get(request.purpose, PURPOSE_DESCRIPTIONS["other"]),
        event_time=request.event_time.strftime("%Y-%m-%d %H:%M") if request.event_time else "TBD",
        special_requirements=request.special_requirements or "None",
        participant_lines=participant_lines,
    )


def fallback_recommendations() -> GenerationResponse:
    """Generic, non-personalised set used when the model is unavailable."""
    everyone = "All participants"
    return GenerationResponse(
        analysis=(
            "The AI service is unavailable right now. Here are general centrally "
            "located ideas to help you keep planning."
        ),
        recommendations=[
            GeneratedRecommendation(
                rank=1,
                name="Downtown shopping district",
                type="Commercial area",
                description="Transit-friendly area with lots of dining options.",
                fairness_analysis="Being at the city center keeps travel times similar for most participants.",
                distances=[{"participant": everyone, "estimate": "About 15-30 minutes", "transport": "Public transit"}],
                facilities=["Near subway", "Many restaurants", "Parking available"],
                suitability_score=7.0,
            ),
            GeneratedRecommendation(
                rank=2,
                name="Large indoor mall",
                type="Shopping mall",
                description="Climate-controlled space with plenty of seating and food.",
                fairness_analysis="Big malls sit close to major roads and bus lines, keeping access fair.",
                distances=[{"participant": everyone, "estimate": "About 20-40 minutes", "transport": "Multiple options"}],
                facilities=["Indoor environment", "Easy parking", "Many choices"],
                suitability_score=6.5,
            ),
            GeneratedRecommendation(
                rank=3,
                name="Transit hub area",
                type="Transit hub",
                description="Highest accessibility with express connections.",
                fairness_analysis="Transit hubs connect every direction, which evens out travel time.",
                distances=[{"participant": everyone, "estimate": "About 10-25 minutes", "transport": "Public transit"}],
                facilities=["Easy transfers", "Links multiple districts", "Shops nearby"],
                suitability_score=6.0,
            ),
        ],
    )


class LLMRecommendationGenerator(RecommendationGenerator):
    """Generator backed by an LLMClient, with a generic fallback for transient failures."""

    def __init__(self, client_factory: Callable[[], LLMClient] = get_llm_client):
        self.client_factory = client_factory

    async def generate(self, request: GenerationRequest) -> GenerationResponse:
        try:
            client = self.client_factory()
        except MissingCredentialsError as e:
            logger.warning("No LLM credentials configured: %s", e)
            raise GenerationFailedError("LLM credentials are not configured", code="NO_API_KEY")

        try:
            payload = await client.complete_json(
                schema=LLMRecommendationPayload,
                system_prompt=LOCATION_SYSTEM_PROMPT,
                user_prompt=build_prompt(request),
                temperature=0
            )
        except Exception as e:
            logger.warning("LLM call failed, using fallback recommendations: %s", e)
            return fallback_recommendations()

        if payload.error:
            code = payload.error_code or "LLM_ERROR"
            logger.warning("Model flagged the request as invalid: %s", code)
            if code not in PROPAGATED_CODES:
                return fallback_recommendations()
            raise GenerationFailedError(
                payload.error_message or "The model rejected the participant addresses",
                code=code,
                details={"suggestions": payload.suggestions}
            )

        if not payload.recommendations:
            raise GenerationFailedError("No recommendations returned", code="NO_RESULTS")

        return GenerationResponse(
            analysis=payload.analysis or "Recommendations derived from participant distribution.",
            recommendations=payload.recommendations
        )


def get_recommendation_generator() -> RecommendationGenerator:
    """Dependency providing the configured generator."""
    return LLMRecommendationGenerator()
