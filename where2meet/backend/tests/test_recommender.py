"""Tests for the LLM-backed recommendation generator."""
import pytest
from where2meet.backend.core.errors import GenerationFailedError
from where2meet.backend.schemas.ai import GenerationRequest, LLMRecommendationPayload, ParticipantLocation
from where2meet.backend.services.llm import LLMClient, MissingCredentialsError, MockLLMClient
from where2meet.backend.services.recommender import (
    LLMRecommendationGenerator,
    build_prompt,
    fallback_recommendations,
)


class StubClient(LLMClient):
    """Returns a fixed payload or raises a fixed error."""

    def __init__(self, payload=None, error=None):
        self.payload = payload
        self.error = error
        self.prompts = []

    async def complete_json(self, schema, system_prompt, user_prompt, temperature=0):
        self.prompts.append(user_prompt)
        if self.error:
            raise self.error
        return schema(**self.payload)


@pytest.fixture
def request_model():
    return GenerationRequest(
        title="Friday dinner",
        purpose="dining",
        participants=[
            ParticipantLocation(nickname="Alice", address="10 Main St"),
            ParticipantLocation(nickname="Bob", address="22 Side Rd"),
        ],
    )


def test_build_prompt_lists_participants(request_model):
    prompt = build_prompt(request_model)

    assert "- Alice: 10 Main St" in prompt
    assert "- Bob: 22 Side Rd" in prompt
    assert "a group meal" in prompt
    assert "Time: TBD" in prompt


@pytest.mark.asyncio
async def test_mock_client_round_trip(request_model):
    """The offline client produces three ranked places with per-participant distances."""
    generator = LLMRecommendationGenerator(client_factory=MockLLMClient)

    response = await generator.generate(request_model)

    assert [r.rank for r in response.recommendations] == [1, 2, 3]
    assert [d.participant for d in response.recommendations[0].distances] == ["Alice", "Bob"]


@pytest.mark.asyncio
async def test_transport_failure_returns_fallback(request_model):
    generator = LLMRecommendationGenerator(client_factory=lambda: StubClient(error=ValueError("bad json")))

    response = await generator.generate(request_model)

    assert response == fallback_recommendations()


@pytest.mark.asyncio
async def test_missing_credentials(request_model):
    def no_client():
        raise MissingCredentialsError("OPENAI_API_KEY not set")

    generator = LLMRecommendationGenerator(client_factory=no_client)

    with pytest.raises(GenerationFailedError) as exc_info:
        await generator.generate(request_model)

    assert exc_info.value.code == "NO_API_KEY"


@pytest.mark.asyncio
async def test_invalid_addresses_propagates(request_model):
    payload = {
        "error": True,
        "error_code": "INVALID_ADDRESSES",
        "error_message": "Addresses are in different cities",
        "suggestions": "Use addresses in one metro area",
    }
    generator = LLMRecommendationGenerator(client_factory=lambda: StubClient(payload=payload))

    with pytest.raises(GenerationFailedError) as exc_info:
        await generator.generate(request_model)

    assert exc_info.value.code == "INVALID_ADDRESSES"
    assert exc_info.value.details == {"suggestions": "Use addresses in one metro area"}


@pytest.mark.asyncio
async def test_unknown_model_error_returns_fallback(request_model):
    payload = {"error": True, "error_code": "RATE_LIMITED"}
    generator = LLMRecommendationGenerator(client_factory=lambda: StubClient(payload=payload))

    response = await generator.generate(request_model)

    assert len(response.recommendations) == 3


@pytest.mark.asyncio
async def test_empty_result(request_model):
    generator = LLMRecommendationGenerator(client_factory=lambda: StubClient(payload={"recommendations": []}))

    with pytest.raises(GenerationFailedError) as exc_info:
        await generator.generate(request_model)

    assert exc_info.value.code == "NO_RESULTS"


def test_payload_accepts_error_shape():
    payload = LLMRecommendationPayload(error=True, error_code="INVALID_ADDRESSES")
    assert payload.recommendations is None
