"""
Tests for ContextRetriever and the bundled sample library.

All tests run fully offline: context providers are plain stand-ins and the
sample library is the JSON file shipped with the package.
"""
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from satcraft.core.errors import QuotaExceeded
from satcraft.models.item import GenerationRequest, WorkedExample
from satcraft.services.context_retriever import (
    DEFAULT_RULES,
    ContextRetriever,
    ProviderResult,
    SampleLibraryContextProvider,
    build_query,
    minimal_context,
)
from fakes import offline_settings

_GEOMETRY = GenerationRequest(section="math", topic="geometry-and-trigonometry", subtopic="Circles",
                              difficulty="medium")


class _FailingProvider:
    def __init__(self, exc):
        self.exc = exc

    def retrieve(self, query, request, max_examples):
        raise self.exc


class _OneExampleProvider:
    def __init__(self):
        self.queries = []

    def retrieve(self, query, request, max_examples):
        self.queries.append(query)
        return ProviderResult(rules="vector rules",
                              examples=[WorkedExample(prompt="Vector example", answer="A")])


# ---------------------------------------------------------------------------
# Fail-open behaviour
# ---------------------------------------------------------------------------

class TestFailOpen:
    def test_quota_error_yields_degraded_context(self):
        retriever = ContextRetriever(provider=_FailingProvider(QuotaExceeded("no credits")),
                                     settings=offline_settings())
        context = retriever.retrieve(_GEOMETRY)
        assert context.degraded is True
        assert DEFAULT_RULES in context.rules
        assert context.examples == ()
        assert "Geometry and Trigonometry" in context.instructions

    def test_unexpected_error_yields_degraded_context(self):
        retriever = ContextRetriever(provider=_FailingProvider(ConnectionError("index offline")),
                                     settings=offline_settings())
        assert retriever.retrieve(_GEOMETRY).degraded is True

    def test_minimal_context_mentions_custom_context(self):
        request = _GEOMETRY.model_copy(update={"custom_context": "Use a pizza slice."})
        assert "Use a pizza slice." in minimal_context(request).instructions


# ---------------------------------------------------------------------------
# Retrieval
# ---------------------------------------------------------------------------

class TestRetrieval:
    def test_sample_library_prefers_matching_topic(self):
        context = ContextRetriever(settings=offline_settings()).retrieve(_GEOMETRY)
        assert context.degraded is False
        assert context.examples
        assert context.rules
        assert all("3x + 7" not in ex.prompt for ex in context.examples)

    def test_external_provider_is_topped_up_from_library(self):
        provider = _OneExampleProvider()
        retriever = ContextRetriever(provider=provider, settings=offline_settings(max_examples=3))
        context = retriever.retrieve(_GEOMETRY)

        assert context.rules == "vector rules"
        assert context.examples[0].prompt == "Vector example"
        assert 1 < len(context.examples) <= 3

    def test_custom_context_is_the_query(self):
        provider = _OneExampleProvider()
        request = _GEOMETRY.model_copy(update={"custom_context": "circles inscribed in squares"})
        ContextRetriever(provider=provider, settings=offline_settings()).retrieve(request)
        assert provider.queries == ["circles inscribed in squares"]

    def test_default_query_names_topic_and_subtopic(self):
        query = build_query(_GEOMETRY)
        assert "Geometry and Trigonometry" in query
        assert "Circles" in query

    def test_rank_rewards_topic_over_difficulty(self):
        library = SampleLibraryContextProvider(samples={"rules": {}, "examples": []})
        same_topic = {"section": "math", "topic": "geometry-and-trigonometry", "difficulty": "hard"}
        same_difficulty = {"section": "math", "topic": "algebra", "difficulty": "medium"}
        assert library._rank(same_topic, _GEOMETRY) > library._rank(same_difficulty, _GEOMETRY)
