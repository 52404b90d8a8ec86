"""
Job payloads and the structured listing contract.

Dataclasses cross the Temporal boundary (workflow ⇄ activity); the
pydantic models describe the JSON object the agent must produce.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, StrictFloat, StrictInt

Number = Union[StrictInt, StrictFloat]

Condition = Literal["New", "Like New", "Good", "Fair", "Poor"]


class Comparable(BaseModel):
    """A similar item's listed or sold price found during research."""
    model_config = ConfigDict(frozen=True)

    title: str
    price: Number
    source: str
    url: Optional[str] = None
    condition: Optional[str] = None
    sold_date: Optional[str] = Field(default=None, alias="soldDate")


class ListingAgentOutput(BaseModel):
    """The listing the agent hands back. Field aliases match the agent's JSON."""
    model_config = ConfigDict(frozen=True)

    title: str = Field(max_length=65)
    description: str
    suggested_price: Number = Field(alias="suggestedPrice")
    price_range_low: Number = Field(alias="priceRangeLow")
    price_range_high: Number = Field(alias="priceRangeHigh")
    category: str
    condition: Condition
    brand: str
    model: Optional[str] = None
    research_notes: str = Field(alias="researchNotes")
    comparables: list[Comparable]

    def to_json_dict(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


# ── Job payloads ──────────────────────────────────────────────────────

@dataclass
class GenerateListingInput:
    """Trigger for the listing-generation job."""
    listing_id: str
    image_urls: list[str] = field(default_factory=list)
    user_description: str | None = None


@dataclass
class EnhanceImageInput:
    """Trigger for the image-enhancement job."""
    image_id: str
    listing_id: str
    request_id: str = ""  # stable across retries; keys the derived row


@dataclass
class RunAgentResult:
    """What the run-agent step hands to the complete step."""
    output: dict  # ListingAgentOutput in its JSON (alias) form
    cost_usd: float = 0.0
    transcript_url: str | None = None


@dataclass
class EnhanceImageResult:
    image_id: str
    blob_url: str
    variant_count: int


# ── Provider I/O ──────────────────────────────────────────────────────

@dataclass
class AgentImage:
    """A downloaded photo ready to hand to a provider."""
    filename: str
    data: bytes
    media_type: str = "image/jpeg"


@dataclass
class AgentProviderResult:
    output: ListingAgentOutput
    cost_usd: float = 0.0
    transcript_lines: list[str] = field(default_factory=list)
