"""
TCG Appraiser — Domain schemas

Pydantic models shared by the adapters, engines, store and workflow.
Field names are snake_case in Python and camelCase on the wire (workflow
input, dead-letter records, cached snapshots).

Money is always Decimal. Confidence-style scalars are floats in [0, 1].
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model: snake_case attributes, camelCase aliases."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FrozenCamelModel(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


# ---------------------------------------------------------------------------
# Feature extraction
# ---------------------------------------------------------------------------


class BoundingBox(FrozenCamelModel):
    left: float = 0.0
    top: float = 0.0
    width: float = 0.0
    height: float = 0.0


class OCRBlock(FrozenCamelModel):
    text: str
    confidence: float = Field(..., ge=0.0, le=1.0)
    bounding_box: BoundingBox = Field(default_factory=BoundingBox)
    type: Literal["LINE", "WORD"] = "LINE"


class BorderMetrics(FrozenCamelModel):
    top_ratio: float
    bottom_ratio: float
    left_ratio: float
    right_ratio: float
    symmetry_score: float = Field(..., ge=0.0, le=1.0)


class FontMetrics(FrozenCamelModel):
    kerning: tuple[float, ...] = ()
    alignment: float = Field(..., ge=0.0, le=1.0)
    font_size_variance: float = Field(..., ge=0.0)


class ImageQuality(FrozenCamelModel):
    blur_score: float = Field(..., ge=0.0, le=1.0)
    glare_detected: bool = False
    brightness: float = 0.0


class ImageMetadata(FrozenCamelModel):
    width: int
    height: int
    format: str
    size_bytes: int


class FeatureEnvelope(FrozenCamelModel):
    """Structured output of image feature extraction. Immutable once produced."""

    ocr: tuple[OCRBlock, ...] = ()
    borders: BorderMetrics
    holo_variance: float = Field(..., ge=0.0)
    font_metrics: FontMetrics
    quality: ImageQuality
    image_meta: ImageMetadata


# ---------------------------------------------------------------------------
# Authenticity
# ---------------------------------------------------------------------------


class AuthenticitySignals(CamelModel):
    visual_hash_confidence: float = Field(..., ge=0.0, le=1.0)
    text_match_confidence: float = Field(..., ge=0.0, le=1.0)
    holo_pattern_confidence: float = Field(..., ge=0.0, le=1.0)
    border_consistency: float = Field(..., ge=0.0, le=1.0)
    font_validation: float = Field(..., ge=0.0, le=1.0)


class AuthenticityResult(CamelModel):
    authenticity_score: float = Field(..., ge=0.0, le=1.0)
    fake_detected: bool
    rationale: str
    signals: AuthenticitySignals
    verified_by_ai: bool = Field(..., alias="verifiedByAI")


# ---------------------------------------------------------------------------
# Pricing
# ---------------------------------------------------------------------------


class PriceQuery(CamelModel):
    card_name: str
    set_name: Optional[str] = None
    number: Optional[str] = None
    condition: Optional[str] = None
    window_days: int = Field(default=14, gt=0)


class RawComp(CamelModel):
    """One observed sale, as reported by a price source."""

    source: str
    price: Decimal
    currency: str = "USD"
    condition: str = "Unknown"
    sold_at: datetime
    listing_url: Optional[str] = None


class PricingResult(CamelModel):
    """
    Fused valuation summary.

    compsCount == 0 is the defined degenerate case: every value field is None
    and confidence is 0. It is valid output, never an error.
    """

    value_low: Optional[Decimal] = None
    value_median: Optional[Decimal] = None
    value_high: Optional[Decimal] = None
    comps_count: int = Field(default=0, ge=0)
    window_days: int = 14
    sources: list[str] = Field(default_factory=list)
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    volatility: float = Field(default=0.0, ge=0.0)

    @model_validator(mode="after")
    def _check_invariants(self) -> "PricingResult":
        values = (self.value_low, self.value_median, self.value_high)
        if self.comps_count == 0:
            if any(v is not None for v in values) or self.confidence != 0.0:
                raise ValueError("PricingResult with no comps must have null values and zero confidence")
            return self
        if any(v is None for v in values):
            raise ValueError("PricingResult with comps must carry low/median/high")
        if not (self.value_low <= self.value_median <= self.value_high):
            raise ValueError(
                f"value ordering violated: {self.value_low} <= {self.value_median} <= {self.value_high}"
            )
        return self

    @classmethod
    def empty(cls, window_days: int, sources: Optional[list[str]] = None) -> "PricingResult":
        return cls(comps_count=0, window_days=window_days, sources=sources or [])

    @property
    def is_degenerate(self) -> bool:
        return self.comps_count == 0


class ValuationSummary(CamelModel):
    summary: str
    fair_value: Optional[Decimal] = None
    trend: Literal["rising", "falling", "stable"] = "stable"
    recommendation: str
    confidence: float = Field(..., ge=0.0, le=1.0)


# ---------------------------------------------------------------------------
# Cards
# ---------------------------------------------------------------------------


class CardMeta(CamelModel):
    """Identification fields handed to the reasoning stages."""

    name: Optional[str] = None
    set_name: Optional[str] = None
    number: Optional[str] = None
    rarity: Optional[str] = None
    condition_estimate: Optional[str] = None


class Card(CamelModel):
    card_id: str
    owner_id: str
    name: Optional[str] = None
    set_name: Optional[str] = None
    number: Optional[str] = None
    rarity: Optional[str] = None
    condition_estimate: Optional[str] = None
    front_image_key: str
    back_image_key: Optional[str] = None
    id_confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    authenticity_score: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    authenticity_signals: Optional[AuthenticitySignals] = None
    value_low: Optional[Decimal] = None
    value_median: Optional[Decimal] = None
    value_high: Optional[Decimal] = None
    comps_count: Optional[int] = None
    sources: Optional[list[str]] = None
    created_at: datetime
    updated_at: datetime
    deleted_at: Optional[datetime] = None

    def meta(self) -> CardMeta:
        return CardMeta(
            name=self.name,
            set_name=self.set_name,
            number=self.number,
            rarity=self.rarity,
            condition_estimate=self.condition_estimate,
        )


class CardCreate(CamelModel):
    """Upload-confirmation payload."""

    front_image_key: str = Field(..., min_length=1)
    back_image_key: Optional[str] = None
    name: Optional[str] = None
    set_name: Optional[str] = None
    number: Optional[str] = None
    rarity: Optional[str] = None
    condition_estimate: Optional[str] = None
    id_confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)


class CardUpdate(CamelModel):
    """Fields a user may edit. Only explicitly supplied fields are written."""

    name: Optional[str] = None
    set_name: Optional[str] = None
    number: Optional[str] = None
    rarity: Optional[str] = None
    condition_estimate: Optional[str] = None


class CardPage(CamelModel):
    items: list[Card] = Field(default_factory=list)
    next_cursor: Optional[str] = None


# ---------------------------------------------------------------------------
# Workflow input + dead-letter record
# ---------------------------------------------------------------------------


class ImageKeys(CamelModel):
    front: str = Field(..., min_length=1)
    back: Optional[str] = None


class WorkflowInput(CamelModel):
    user_id: str = Field(..., min_length=1)
    card_id: str = Field(..., min_length=1)
    s3_keys: ImageKeys
    request_id: str = Field(..., min_length=1)
    force_refresh: bool = False


class ErrorInfo(CamelModel):
    type: str
    cause: str


class PartialResults(CamelModel):
    features: Optional[FeatureEnvelope] = None
    pricing_result: Optional[PricingResult] = None
    authenticity_result: Optional[AuthenticityResult] = None

    def available(self) -> list[str]:
        return [name for name, value in self if value is not None]


class DeadLetterRecord(CamelModel):
    user_id: str
    card_id: str
    request_id: str
    error: ErrorInfo
    partial_results: PartialResults = Field(default_factory=PartialResults)
    timestamp: datetime
