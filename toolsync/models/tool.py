"""
Catalog tool model.

A tool is the catalog record that gets projected into the vector search
collections. Field names are snake_case; camelCase aliases are accepted so
documents written by the catalog API validate unchanged.
"""

import re
from datetime import datetime
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from .sync import SyncMetadata, default_sync_metadata


_TOOL_ID_PATTERN = re.compile(r'^[a-z0-9][a-z0-9-]*$')


class ApprovalStatus(str, Enum):
    """Moderation state of a catalog entry"""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ToolStatus(str, Enum):
    """Product lifecycle status shown in the catalog"""
    ACTIVE = "active"
    BETA = "beta"
    DEPRECATED = "deprecated"
    DISCONTINUED = "discontinued"


class PricingTier(BaseModel):
    """One pricing tier of a tool"""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True
    )

    tier: str
    billing_period: str
    price: float = Field(ge=0)


class Tool(BaseModel):
    """Catalog tool with its embedded sync metadata"""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        extra="ignore"
    )

    # Identity
    id: str
    slug: str

    # Semantic fields
    name: str
    description: str = ""
    long_description: Optional[str] = None
    tagline: Optional[str] = None
    functionality: List[str] = Field(default_factory=list)
    categories: List[str] = Field(default_factory=list)
    industries: List[str] = Field(default_factory=list)
    user_types: List[str] = Field(default_factory=list)
    deployment: List[str] = Field(default_factory=list)
    interface: List[str] = Field(default_factory=list)
    pricing_model: List[str] = Field(default_factory=list)
    status: ToolStatus = ToolStatus.ACTIVE

    # Metadata-only fields
    pricing: List[PricingTier] = Field(default_factory=list)
    pricing_url: Optional[str] = None
    website: Optional[str] = None
    documentation: Optional[str] = None
    logo_url: Optional[str] = None
    contributor: Optional[str] = None

    # Moderation
    approval_status: ApprovalStatus = ApprovalStatus.PENDING
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None

    # Bookkeeping
    date_added: Optional[datetime] = None
    last_updated: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    sync_metadata: SyncMetadata = Field(default_factory=default_sync_metadata)

    @model_validator(mode='before')
    @classmethod
    def default_slug(cls, data: Any) -> Any:
        """Fall back to the id when no slug was supplied"""
        if isinstance(data, dict) and not data.get('slug') and data.get('id'):
            data = {**data, 'slug': data['id']}
        return data

    @field_validator('id')
    @classmethod
    def validate_id(cls, v: str) -> str:
        """Tool ids are lowercase slugs"""
        if not _TOOL_ID_PATTERN.match(v):
            raise ValueError(f'Invalid tool id: {v!r}')
        return v

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not v:
            raise ValueError('Tool name cannot be empty')
        return v

    @property
    def is_approved(self) -> bool:
        return self.approval_status == ApprovalStatus.APPROVED

    def to_document(self) -> dict:
        """JSON-compatible document using field names"""
        return self.model_dump(mode='json')
