"""LLM client abstraction layer."""
from abc import ABC, abstractmethod
from typing import Type, TypeVar, Optional
from pydantic import BaseModel, ValidationError
import json
import re
from where2meet.backend.core.config import settings

T = TypeVar("T", bound=BaseModel)


class MissingCredentialsError(ValueError):
    """Raised when the configured provider has no credentials."""


LOCATION_SYSTEM_PROMPT = """You are a professional meet-up location assistant with deep geographic knowledge.

Your responsibilities:
1. Validate that the provided addresses are usable.
2. Analyze how the participants are distributed geographically.
3. Recommend fair, realistic places to meet.
4. Provide clear distance and transport estimates.

Key principles:
- Fairness first: keep the maximum travel time difference as small as possible.
- Practicality: recommend real, recognizable locations.
- Accuracy: ground every claim in real geography.
- Clarity: provide concise explanations and reasoning."""

PURPOSE_DESCRIPTIONS = {
    "dining": "a group meal",
    "coffee": "a coffee chat",
    "meeting": "a meeting",
    "other": "a casual hangout",
}

LOCATION_USER_PROMPT = """[Event Details]
- Title: {title}
- Purpose: {purpose}
- Time: {event_time}
- Special requirements: {special_requirements}

[Participant Addresses]
{participant_lines}

[Task]
Analyze these addresses and recommend 3 fair, suitable meeting locations.

[Requirements]
1. Understand roughly where each address is located.
2. Find areas that keep travel times fair for everyone.
3. Suggest concrete places in those areas that match the meeting purpose.
4. Estimate the distance and likely transport for each participant.
5. Provide approximate latitude/longitude coordinates for each recommendation.
6. Explain why each location is fair.

[Address Validation]
Each address must be a specific, real place and all addresses must be in the same metro region.
If any address is invalid, return only:
{{"error": true, "error_code": "INVALID_ADDRESSES", "error_message": "...", "suggestions": "..."}}

[Output]
Otherwise return:
{{"analysis": "...", "recommendations": [{{"rank": 1, "name": "...", "type": "...", "description": "...",
"fairness_analysis": "...", "coordinates": {{"lat": 0.0, "lng": 0.0}},
"distances": [{{"participant": "...", "participant_address": "...", "coordinates": {{"lat": 0.0, "lng": 0.0}},
"estimate": "...", "transport": "...", "time": "..."}}],
"facilities": ["..."], "suitability_score": 0.0}}]}}

Always return exactly 3 recommendations ranked 1, 2 and 3 with suitability scores between 0 and 10.
Output only JSON."""

PARTICIPANT_HEADER = "[Participant Addresses]"
TASK_HEADER = "[Task]"

# Matches "- nickname: address" lines of the participant block
PARTICIPANT_LINE = re.compile(r"^- (?P<nickname>[^:\n]+): (?P<address>.+)$", re.MULTILINE)


class LLMClient(ABC):
    """Abstract base class for LLM clients."""

    @abstractmethod
    async def complete_json(
        self,
        schema: Type[T],
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0
    ) -> T:
        """
        Complete a JSON response using the LLM.

        Args:
            schema: Pydantic model class for response validation
            system_prompt: System prompt
            user_prompt: User prompt
            temperature: Temperature for generation (default 0 for deterministic)

        Returns:
            Validated Pydantic model instance

        Raises:
            ValueError: If response cannot be validated against schema
        """
        pass


class OpenAIClient(LLMClient):
    """OpenAI LLM client implementation."""

    def __init__(self, api_key: str, model: str = "gpt-4o"):
        """
        Initialize OpenAI client.

        Args:
            api_key: OpenAI API key
            model: Model name (default: gpt-4o)
        """
        from openai import AsyncOpenAI
        self.client = AsyncOpenAI(api_key=api_key)
        self.model = model

    async def complete_json(
        self,
        schema: Type[T],
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0
    ) -> T:
        """Complete JSON using OpenAI."""
        response = await self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt}
            ],
            response_format={"type": "json_object"},
            temperature=temperature
        )

        content = response.choices[0].message.content
        if not content:
            raise ValueError("Empty response from OpenAI")

        try:
            data = json.loads(content)
            return schema(**data)
        except (json.JSONDecodeError, ValidationError) as e:
            raise ValueError(f"Failed to parse OpenAI response: {e}")


class VertexClient(LLMClient):
    """Vertex AI (Gemini) LLM client implementation."""

    def __init__(
        self,
        project: str,
        location: str,
        model: str = "gemini-1.5-pro",
        credentials_path: Optional[str] = None
    ):
        """
        Initialize Vertex AI client.

        Args:
            project: GCP project ID
            location: GCP location (e.g., us-central1)
            model: Model name (default: gemini-1.5-pro)
            credentials_path: Path to service account credentials JSON
        """
        try:
            import vertexai
            from vertexai.generative_models import GenerativeModel
        except ImportError:
            raise ImportError(
                "google-cloud-aiplatform package not installed. "
                "Install with: pip install 'where2meet[vertex]'"
            )

        if credentials_path:
            import os
            os.environ["GOOGLE_APPLICATION_CREDENTIALS"] = credentials_path

        vertexai.init(project=project, location=location)
        self.model_name = model
        self.model = GenerativeModel(model)

    async def complete_json(
        self,
        schema: Type[T],
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0
    ) -> T:
        """Complete JSON using Vertex AI."""
        # Combine system and user prompts
        full_prompt = f"{system_prompt}\n\n{user_prompt}\n\nRespond with valid JSON only."

        response = await self.model.generate_content_async(
            full_prompt,
            generation_config={
                "temperature": temperature,
                "response_mime_type": "application/json"
            }
        )

        content = response.text
        if not content:
            raise ValueError("Empty response from Vertex AI")

        try:
            data = json.loads(content)
            return schema(**data)
        except (json.JSONDecodeError, ValidationError) as e:
            raise ValueError(f"Failed to parse Vertex AI response: {e}")


class MockLLMClient(LLMClient):
    """Mock LLM client for testing and offline use."""

    PLACES = [
        ("Central Station Plaza", "Transit hub", 8.5),
        ("Riverside Food Hall", "Food court", 8.0),
        ("Old Town Square", "Public square", 7.5),
    ]

    async def complete_json(
        self,
        schema: Type[T],
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0
    ) -> T:
        """Return mock response based on schema."""
        if schema.__name__ == "LLMRecommendationPayload":
            block = user_prompt.split(PARTICIPANT_HEADER, 1)[-1].split(TASK_HEADER, 1)[0]
            participants = [
                (m.group("nickname").strip(), m.group("address").strip())
                for m in PARTICIPANT_LINE.finditer(block)
            ]
            recommendations = []
            for rank, (name, place_type, score) in enumerate(self.PLACES, start=1):
                recommendations.append({
                    "rank": rank,
                    "name": name,
                    "type": place_type,
                    "description": f"{name} is easy to reach and has room for the whole group.",
                    "fairness_analysis": "Travel times are within a few minutes of each other.",
                    "coordinates": {"lat": 51.5 + rank / 100, "lng": -0.12 - rank / 100},
                    "distances": [
                        {
                            "participant": nickname,
                            "participant_address": address,
                            "estimate": f"About {3 + rank} km",
                            "transport": "Public transit",
                            "time": f"{15 + rank * 5} min",
                        }
                        for nickname, address in participants
                    ],
                    "facilities": ["Near transit", "Seating for groups", "Accessible"],
                    "suitability_score": score,
                })
            return schema(**{
                "analysis": f"Mock analysis for {len(participants)} participants.",
                "recommendations": recommendations,
            })

        # Default: try to create instance with empty dict
        return schema()


def get_llm_client() -> LLMClient:
    """
    Factory function to get LLM client based on configuration.

    Returns:
        LLMClient instance

    Raises:
        MissingCredentialsError: If the selected provider is not configured
    """
    provider = settings.llm_provider.lower()

    if provider == "openai":
        if not settings.openai_api_key:
            raise MissingCredentialsError("OPENAI_API_KEY not set")
        return OpenAIClient(api_key=settings.openai_api_key, model=settings.llm_model)

    elif provider == "vertex":
        if not settings.vertex_project:
            raise MissingCredentialsError("VERTEX_PROJECT not set")
        return VertexClient(
            project=settings.vertex_project,
            location=settings.vertex_location,
            model=settings.llm_model,
            credentials_path=settings.google_application_credentials
        )

    elif provider == "mock":
        return MockLLMClient()

    else:
        raise ValueError(f"Unknown LLM provider: {provider}")
