"""
Collection-specific content generation.

Each collection embeds a different text built from the fields it owns.
Field weights are expressed by repetition: a value with weight w appears
floor(w) times, plus once more for a fractional weight.
"""

import logging
import math
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Type

from ..models.sync import SyncCollection
from ..models.tool import Tool
from .errors import ContentGenerationError
from .fields import COLLECTION_FIELDS, PAYLOAD_METADATA_FIELDS, get_vector_type

logger = logging.getLogger(__name__)


def _text_values(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value if v is not None and str(v).strip()]
    text = str(getattr(value, 'value', value))
    return [text] if text.strip() else []


class ContentGenerator(ABC):
    """Builds the embedding text for one collection"""

    collection: SyncCollection
    weightings: Dict[str, float] = {}
    required_fields: tuple = ()

    @property
    def fields(self) -> List[str]:
        return list(COLLECTION_FIELDS[self.collection])

    def generate(self, tool: Tool) -> str:
        parts: List[str] = []
        for field_name, weight in self.weightings.items():
            self._add_weighted(_text_values(getattr(tool, field_name)), weight, parts)
        parts.extend(self.context_sentences(tool))
        return ' '.join(parts)

    @abstractmethod
    def context_sentences(self, tool: Tool) -> List[str]:
        """Descriptive sentences appended after the weighted values"""
        pass

    def validate(self, tool: Tool) -> Dict[str, Any]:
        missing = [name for name in self.required_fields if not _text_values(getattr(tool, name))]
        return {"valid": not missing, "missing_fields": missing}

    @staticmethod
    def _add_weighted(values: Iterable[str], weight: float, parts: List[str]) -> None:
        repeat = math.floor(weight) + (0 if float(weight).is_integer() else 1)
        for value in values:
            parts.extend([value] * repeat)


class ToolsContentGenerator(ContentGenerator):
    """Core identity: name and descriptions"""

    collection = SyncCollection.TOOLS
    weightings = {"name": 3.0, "description": 2.0, "long_description": 1.5, "tagline": 1.0}
    required_fields = ("name", "description")

    def context_sentences(self, tool: Tool) -> List[str]:
        return []


class FunctionalityContentGenerator(ContentGenerator):
    """Capabilities and categories"""

    collection = SyncCollection.FUNCTIONALITY
    weightings = {"functionality": 2.5, "categories": 2.0}
    required_fields = ("functionality", "categories")

    def context_sentences(self, tool: Tool) -> List[str]:
        sentences = []
        if tool.functionality:
            sentences.append(f"Features: {', '.join(tool.functionality)}")
        if tool.categories:
            sentences.append(f"Categories: {', '.join(tool.categories)}")
        return sentences


class UsecasesContentGenerator(ContentGenerator):
    """Industry, audience and deployment targeting"""

    collection = SyncCollection.USECASES
    weightings = {"industries": 2.0, "user_types": 2.0, "deployment": 1.5}
    required_fields = ("industries", "user_types")

    def context_sentences(self, tool: Tool) -> List[str]:
        sentences = []
        if tool.industries and tool.user_types:
            sentences.append(
                f"Designed for {' and '.join(tool.user_types)} in {', '.join(tool.industries)} industries"
            )
        if tool.deployment:
            sentences.append(f"Deployment options: {', '.join(tool.deployment)}")
        return sentences


class InterfaceContentGenerator(ContentGenerator):
    """Interfaces, pricing model and lifecycle status"""

    collection = SyncCollection.INTERFACE
    weightings = {"interface": 2.0, "pricing_model": 1.5, "status": 1.0}
    required_fields = ("interface", "pricing_model", "status")

    def context_sentences(self, tool: Tool) -> List[str]:
        sentences = []
        if tool.interface:
            sentences.append(f"Available interfaces: {', '.join(tool.interface)}")
        if tool.pricing_model:
            sentences.append(f"Pricing model: {', '.join(tool.pricing_model)}")
        if tool.status:
            sentences.append(f"Current status: {tool.status.value}")
        return sentences


class ContentGeneratorFactory:
    """Looks up the content generator of each collection"""

    GENERATORS: Dict[SyncCollection, Type[ContentGenerator]] = {
        SyncCollection.TOOLS: ToolsContentGenerator,
        SyncCollection.FUNCTIONALITY: FunctionalityContentGenerator,
        SyncCollection.USECASES: UsecasesContentGenerator,
        SyncCollection.INTERFACE: InterfaceContentGenerator,
    }

    def __init__(self):
        self._generators = {collection: cls() for collection, cls in self.GENERATORS.items()}

    def create(self, collection: SyncCollection) -> ContentGenerator:
        try:
            return self._generators[collection]
        except KeyError:
            raise ContentGenerationError(f"No content generator for collection: {collection}") from None

    def generate(self, tool: Tool, collection: SyncCollection) -> str:
        """
        Generate embedding text for a tool in one collection.

        Raises:
            ContentGenerationError: when the generated text is empty
        """
        try:
            content = self.create(collection).generate(tool)
        except ContentGenerationError:
            raise
        except Exception as e:
            raise ContentGenerationError(
                f"Content generation failed for {collection.value}: {e}"
            ) from e

        if not content.strip():
            raise ContentGenerationError(
                f"No content generated for tool {tool.id} in collection {collection.value}"
            )
        return content

    def validate(self, tool: Tool) -> Dict[SyncCollection, Dict[str, Any]]:
        return {collection: gen.validate(tool) for collection, gen in self._generators.items()}

    def build_payload(
        self,
        tool: Tool,
        collection: SyncCollection,
        synced_at: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """Payload stored next to the vector; display metadata included"""
        document = tool.model_dump(mode='json')
        payload: Dict[str, Any] = {
            "tool_id": tool.id,
            "slug": tool.slug,
            "name": tool.name,
            "status": tool.status.value,
            "approval_status": tool.approval_status.value,
            "collection": collection.value,
            "vector_type": get_vector_type(collection),
            "synced_at": (synced_at or datetime.now()).isoformat(),
        }
        for field_name in COLLECTION_FIELDS[collection]:
            payload[field_name] = document.get(field_name)
        for field_name in PAYLOAD_METADATA_FIELDS:
            payload[field_name] = document.get(field_name)
        return payload
