"""Typed rich content blocks and suggested actions attached to assistant replies.

``RichContent`` is a closed union discriminated by ``type``. Payloads serialize
with camelCase keys for the web client and accept either spelling on input.
"""

from enum import Enum
from typing import Annotated, List, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel


class RichContentType(str, Enum):
    PROFESSIONAL_CARD = "PROFESSIONAL_CARD"
    PROFESSIONAL_LIST = "PROFESSIONAL_LIST"
    CATEGORY_LIST = "CATEGORY_LIST"
    REVIEW_LIST = "REVIEW_LIST"
    PRICE_INFO = "PRICE_INFO"
    FEATURE_EXPLANATION = "FEATURE_EXPLANATION"


class Payload(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ProRate(Payload):
    min: float | None = None
    max: float | None = None
    model: Literal["fixed", "range", "byAgreement", "per_sqm"] = "fixed"
    currency: str = "GEL"


class ProfessionalSummary(Payload):
    id: str
    uid: int | None = None
    name: str
    avatar: str | None = None
    title: str | None = None
    is_verified: bool = False
    is_premium: bool = False
    avg_rating: float = 0.0
    total_reviews: int = 0
    primary_category: str = ""
    primary_category_ka: str | None = None
    price_range: ProRate | None = None
    portfolio_count: int = 0
    completed_jobs: int = 0
    profile_url: str


class CategorySummary(Payload):
    key: str
    name: str
    name_ka: str | None = None
    icon: str | None = None
    subcategory_count: int = 0


class ReviewSummary(Payload):
    id: str
    rating: float
    text: str | None = None
    client_name: str
    is_anonymous: bool = False
    is_verified: bool = False
    source: Literal["homico", "external"] = "homico"
    project_title: str | None = None
    created_at: str


class PriceTier(Payload):
    label: str
    label_ka: str | None = None
    label_ru: str | None = None
    min: float
    max: float
    currency: str = "GEL"


class AveragePrice(Payload):
    min: float
    max: float
    currency: str = "GEL"


class PriceReport(Payload):
    category: str
    category_ka: str | None = None
    average_price: AveragePrice | None = None
    price_ranges: List[PriceTier] = Field(default_factory=list)
    professional_count: int = 0
    note: str | None = None
    note_ka: str | None = None
    note_ru: str | None = None


class FeatureStep(Payload):
    step: int
    title: str
    title_ka: str | None = None
    title_ru: str | None = None
    description: str
    description_ka: str | None = None
    description_ru: str | None = None
    icon: str | None = None


class FeatureExplanation(Payload):
    feature: str
    title: str
    title_ka: str | None = None
    title_ru: str | None = None
    description: str
    description_ka: str | None = None
    description_ru: str | None = None
    steps: List[FeatureStep] = Field(default_factory=list)
    action_url: str | None = None
    action_label: str | None = None
    action_label_ka: str | None = None
    action_label_ru: str | None = None


class ProfessionalCardContent(Payload):
    type: Literal[RichContentType.PROFESSIONAL_CARD] = RichContentType.PROFESSIONAL_CARD
    data: ProfessionalSummary


class ProfessionalListContent(Payload):
    type: Literal[RichContentType.PROFESSIONAL_LIST] = RichContentType.PROFESSIONAL_LIST
    data: List[ProfessionalSummary]


class CategoryListContent(Payload):
    type: Literal[RichContentType.CATEGORY_LIST] = RichContentType.CATEGORY_LIST
    data: List[CategorySummary]


class ReviewListContent(Payload):
    type: Literal[RichContentType.REVIEW_LIST] = RichContentType.REVIEW_LIST
    data: List[ReviewSummary]


class PriceInfoContent(Payload):
    type: Literal[RichContentType.PRICE_INFO] = RichContentType.PRICE_INFO
    data: PriceReport


class FeatureExplanationContent(Payload):
    type: Literal[RichContentType.FEATURE_EXPLANATION] = RichContentType.FEATURE_EXPLANATION
    data: FeatureExplanation


RichContent = Annotated[
    Union[
        ProfessionalCardContent,
        ProfessionalListContent,
        CategoryListContent,
        ReviewListContent,
        PriceInfoContent,
        FeatureExplanationContent,
    ],
    Field(discriminator="type"),
]

RICH_CONTENT_LIST = TypeAdapter(List[RichContent])


class SuggestedAction(Payload):
    """A follow-up link or in-app action shown under a reply."""

    type: Literal["link", "action"] = "link"
    label: str
    label_en: str | None = None
    label_ka: str | None = None
    label_ru: str | None = None
    url: str | None = None
    action_id: str | None = None


SUGGESTED_ACTION_LIST = TypeAdapter(List[SuggestedAction])
