"""
Tests for collection-specific content generation and payloads.
"""

import pytest

from toolsync.models.sync import SyncCollection
from toolsync.sync.content import (
    ContentGenerator, ContentGeneratorFactory, InterfaceContentGenerator, UsecasesContentGenerator
)
from toolsync.sync.errors import ContentGenerationError
from toolsync.sync.fields import COLLECTION_FIELDS


class TestContentGenerators:
    """Weighted text per collection"""

    @pytest.fixture
    def factory(self):
        return ContentGeneratorFactory()

    def test_weight_repetition(self):
        parts = []
        ContentGenerator._add_weighted(["a"], 2.0, parts)
        ContentGenerator._add_weighted(["b"], 1.5, parts)
        ContentGenerator._add_weighted(["c"], 1.0, parts)

        assert parts == ["a", "a", "b", "b", "c"]

    def test_tools_content_weights_name(self, factory, make_tool):
        content = factory.generate(make_tool(), SyncCollection.TOOLS)

        assert content.startswith("Notion AI Notion AI Notion AI ")
        assert content.count("AI writing assistant built into Notion") == 2
        assert content.count("Write faster") == 1

    def test_functionality_content(self, factory, make_tool):
        content = factory.generate(make_tool(), SyncCollection.FUNCTIONALITY)

        assert content.count("Summarization") == 4
        assert "Features: Text Generation, Summarization" in content
        assert "Categories: Productivity, Writing" in content

    def test_usecases_content(self, make_tool):
        content = UsecasesContentGenerator().generate(make_tool())

        assert "Designed for Writers and Teams in Technology, Education industries" in content
        assert "Deployment options: Cloud" in content

    def test_interface_content_includes_status(self, make_tool):
        content = InterfaceContentGenerator().generate(make_tool(status="beta"))

        assert "Available interfaces: Web, API" in content
        assert "Pricing model: Freemium" in content
        assert content.endswith("Current status: beta")

    def test_generators_use_owned_fields_only(self, factory, make_tool):
        for collection in SyncCollection:
            generator = factory.create(collection)
            assert set(generator.weightings) <= set(COLLECTION_FIELDS[collection])

    def test_empty_content_raises(self, factory, make_tool):
        tool = make_tool(industries=[], userTypes=[], deployment=[])

        with pytest.raises(ContentGenerationError):
            factory.generate(tool, SyncCollection.USECASES)

    def test_validate_reports_missing_fields(self, factory, make_tool):
        report = factory.validate(make_tool(categories=[]))

        assert report[SyncCollection.TOOLS] == {"valid": True, "missing_fields": []}
        assert report[SyncCollection.FUNCTIONALITY] == {"valid": False, "missing_fields": ["categories"]}


class TestPayload:

    def test_payload_contents(self, make_tool):
        payload = ContentGeneratorFactory().build_payload(make_tool(), SyncCollection.INTERFACE)

        assert payload["tool_id"] == "notion-ai"
        assert payload["slug"] == "notion-ai"
        assert payload["collection"] == "interface"
        assert payload["vector_type"] == "entities_interface"
        assert payload["interface"] == ["Web", "API"]
        assert payload["status"] == "active"
        assert payload["pricing"] == [{"tier": "Plus", "billing_period": "monthly", "price": 10.0}]
        assert "industries" not in payload
