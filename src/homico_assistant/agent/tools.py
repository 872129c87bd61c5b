import json
import logging
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Awaitable, Callable, Dict, List, Literal, Tuple, Type

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from ..rich_content import (
    CategoryListContent,
    CategorySummary,
    FeatureExplanationContent,
    PriceInfoContent,
    ProfessionalCardContent,
    ProfessionalListContent,
    ProfessionalSummary,
    ProRate,
    ReviewListContent,
    ReviewSummary,
    RichContent,
)
from ..services.marketplace import MarketplaceReader, ProFilters
from . import knowledge_base
from .categories import CategoryResolver
from .pricing import build_price_report

logger = logging.getLogger(__name__)


class ToolArgumentError(ValueError):
    """Tool arguments failed schema validation."""


class UnknownToolError(LookupError):
    """The model asked for a tool that is not in the dispatch table."""


@dataclass
class ToolResult:
    """What one tool call produced: a compact summary for the model, a card for the UI."""

    summary: Dict[str, Any] = field(default_factory=dict)
    rich_content: RichContent | None = None


class _Args(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


Handler = Callable[[Any, str], Awaitable[ToolResult]]


class SearchProfessionalsArgs(_Args):
    category: str | None = None
    subcategory: str | None = None
    min_rating: float | None = Field(default=None, ge=0, le=5)
    min_price: float | None = Field(default=None, ge=0)
    max_price: float | None = Field(default=None, ge=0)
    sort: Literal["rating", "reviews", "price-low", "price-high", "newest"] = "rating"
    limit: int = Field(default=5, ge=1, le=10)


class ProfessionalArgs(_Args):
    pro_id: str = Field(min_length=1)


class ProfessionalReviewsArgs(_Args):
    pro_id: str = Field(min_length=1)
    limit: int = Field(default=5, ge=1, le=10)


class CategoriesArgs(_Args):
    category_key: str | None = None


class PriceRangesArgs(_Args):
    category: str = Field(min_length=1)


class ExplainFeatureArgs(_Args):
    feature: str = Field(min_length=1)
    locale: Literal["en", "ka", "ru"] | None = None


@lru_cache(maxsize=1)
def get_tool_schemas() -> List[Dict[str, Any]]:
    """Return OpenAI tool schemas for the six marketplace tools (cached)."""
    return [
        {
            "type": "function",
            "function": {
                "name": "search_professionals",
                "description": (
                    "Search Homico professionals by category or subcategory, minimum rating "
                    "and price. Category may be a key (plumbing) or a role word (plumber)."
                ),
                "parameters": {
                    "type": "object",
                    "properties": {
                        "category": {"type": "string", "description": "Category or subcategory key or name"},
                        "subcategory": {"type": "string", "description": "Subcategory key or name"},
                        "minRating": {"type": "number", "minimum": 0, "maximum": 5},
                        "minPrice": {"type": "number", "minimum": 0, "description": "Minimum base price in GEL"},
                        "maxPrice": {"type": "number", "minimum": 0, "description": "Maximum base price in GEL"},
                        "sort": {
                            "type": "string",
                            "enum": ["rating", "reviews", "price-low", "price-high", "newest"],
                        },
                        "limit": {"type": "integer", "minimum": 1, "maximum": 10},
                    },
                    "required": [],
                },
            },
        },
        {
            "type": "function",
            "function": {
                "name": "get_professional_details",
                "description": "Get the full profile of one professional by id or numeric uid",
                "parameters": {
                    "type": "object",
                    "properties": {"proId": {"type": "string"}},
                    "required": ["proId"],
                },
            },
        },
        {
            "type": "function",
            "function": {
                "name": "get_professional_reviews",
                "description": "Get the most recent client reviews of a professional",
                "parameters": {
                    "type": "object",
                    "properties": {
                        "proId": {"type": "string"},
                        "limit": {"type": "integer", "minimum": 1, "maximum": 10},
                    },
                    "required": ["proId"],
                },
            },
        },
        {
            "type": "function",
            "function": {
                "name": "get_categories",
                "description": "List all active service categories, or one category by key",
                "parameters": {
                    "type": "object",
                    "properties": {"categoryKey": {"type": "string"}},
                    "required": [],
                },
            },
        },
        {
            "type": "function",
            "function": {
                "name": "get_price_ranges",
                "description": (
                    "Budget, mid-range and premium price bands for a category, computed from "
                    "the prices professionals list on Homico"
                ),
                "parameters": {
                    "type": "object",
                    "properties": {"category": {"type": "string"}},
                    "required": ["category"],
                },
            },
        },
        {
            "type": "function",
            "function": {
                "name": "explain_feature",
                "description": (
                    "Step-by-step explanation of a Homico feature, e.g. registration, posting a "
                    "job, verification, reviews, portfolio, price calculator"
                ),
                "parameters": {
                    "type": "object",
                    "properties": {
                        "feature": {"type": "string", "description": "Feature name or the user's phrasing"},
                        "locale": {"type": "string", "enum": ["en", "ka", "ru"]},
                    },
                    "required": ["feature"],
                },
            },
        },
    ]


def _pricing_model(model: str | None) -> str:
    normalized = (model or "").lower()
    if normalized == "range":
        return "range"
    if normalized in ("byagreement", "hourly", "daily"):
        return "byAgreement"
    if normalized in ("per_sqm", "sqm"):
        return "per_sqm"
    return "fixed"


def _professional(pro: Dict[str, Any], category_names: Dict[str, tuple]) -> ProfessionalSummary:
    primary_key = (pro.get("categories") or [""])[0]
    name, name_ka = category_names.get(primary_key, (primary_key, primary_key))
    price_range = None
    if pro.get("base_price"):
        price_range = ProRate(
            min=pro["base_price"],
            max=pro.get("max_price"),
            model=_pricing_model(pro.get("pricing_model")),
            currency=pro.get("currency") or "GEL",
        )
    return ProfessionalSummary(
        id=str(pro["id"]),
        uid=pro.get("uid"),
        name=pro.get("name") or "Professional",
        avatar=pro.get("avatar"),
        title=pro.get("title"),
        is_verified=pro.get("verification_status") == "verified",
        is_premium=bool(pro.get("is_premium")),
        avg_rating=pro.get("avg_rating") or 0,
        total_reviews=pro.get("total_reviews") or 0,
        primary_category=name,
        primary_category_ka=name_ka,
        price_range=price_range,
        portfolio_count=pro.get("portfolio_count") or 0,
        completed_jobs=(pro.get("completed_jobs") or 0) + (pro.get("external_completed_jobs") or 0),
        profile_url=f"/professionals/{pro.get('uid') or pro['id']}",
    )


def _brief(pro: ProfessionalSummary) -> Dict[str, Any]:
    return {
        "id": pro.id,
        "name": pro.name,
        "title": pro.title,
        "rating": pro.avg_rating,
        "reviews": pro.total_reviews,
        "category": pro.primary_category,
        "verified": pro.is_verified,
        "priceFrom": pro.price_range.min if pro.price_range else None,
        "priceTo": pro.price_range.max if pro.price_range else None,
    }


def _localized_faqs(items: List[Dict[str, Any]], locale: str) -> List[Dict[str, str]]:
    return [
        {
            "question": faq["question"].get(locale) or faq["question"]["en"],
            "answer": faq["answer"].get(locale) or faq["answer"]["en"],
        }
        for faq in items
    ]


class MarketplaceTools:
    """The assistant's dispatch table: validated read queries over marketplace data."""

    def __init__(self, marketplace: MarketplaceReader, currency: str = "GEL") -> None:
        self._marketplace = marketplace
        self._categories = CategoryResolver(marketplace)
        self._currency = currency
        self._dispatch: Dict[str, Tuple[Type[_Args], Handler]] = {
            "search_professionals": (SearchProfessionalsArgs, self.search_professionals),
            "get_professional_details": (ProfessionalArgs, self.get_professional_details),
            "get_professional_reviews": (ProfessionalReviewsArgs, self.get_professional_reviews),
            "get_categories": (CategoriesArgs, self.get_categories),
            "get_price_ranges": (PriceRangesArgs, self.get_price_ranges),
            "explain_feature": (ExplainFeatureArgs, self.explain_feature),
        }

    @property
    def names(self) -> List[str]:
        return list(self._dispatch)

    def validate(self, name: str, arguments: str | Dict[str, Any] | None) -> BaseModel:
        """Parse and validate raw tool-call arguments against the tool's schema."""
        if name not in self._dispatch:
            raise UnknownToolError(f"Unknown tool: {name}")
        if isinstance(arguments, str):
            try:
                arguments = json.loads(arguments) if arguments.strip() else {}
            except json.JSONDecodeError as e:
                raise ToolArgumentError(f"invalid arguments - {e}") from e
        if arguments is None:
            arguments = {}
        try:
            return self._dispatch[name][0].model_validate(arguments)
        except ValidationError as e:
            raise ToolArgumentError(f"invalid arguments for {name}: {e.errors(include_url=False)}") from e

    async def execute(
        self, name: str, arguments: str | Dict[str, Any] | None, locale: str = "en"
    ) -> ToolResult:
        """Validate then run one tool. Raises on unknown tools and bad arguments."""
        args = self.validate(name, arguments)
        logger.info("Executing tool %s", name)
        return await self._dispatch[name][1](args, locale)

    async def _category_names(self, keys: List[str]) -> Dict[str, tuple]:
        keys = [k for k in dict.fromkeys(keys) if k]
        categories = await self._marketplace.find_categories_by_keys(keys)
        return {c["key"]: (c["name"], c.get("name_ka")) for c in categories}

    async def _filters_for(self, category: str) -> ProFilters:
        match = await self._categories.resolve(category)
        if match.is_top_level:
            return ProFilters(category=match.category_key)
        return ProFilters(subcategory=match.subcategory_key)

    async def search_professionals(self, args: SearchProfessionalsArgs, locale: str = "en") -> ToolResult:
        filters = ProFilters(sort=args.sort, limit=args.limit)
        if args.category:
            resolved = await self._filters_for(args.category)
            filters.category = resolved.category
            filters.subcategory = resolved.subcategory
        if args.subcategory:
            match = await self._categories.resolve(args.subcategory)
            if match.is_top_level:
                filters.category = filters.category or match.category_key
            else:
                filters.subcategory = match.subcategory_key
        filters.min_rating = args.min_rating
        filters.min_price = args.min_price
        filters.max_price = args.max_price

        pros = await self._marketplace.find_pros(filters)
        names = await self._category_names([(p.get("categories") or [""])[0] for p in pros])
        professionals = [_professional(p, names) for p in pros]

        summary: Dict[str, Any] = {
            "count": len(professionals),
            "filters": {
                k: v
                for k, v in {
                    "category": filters.category,
                    "subcategory": filters.subcategory,
                    "minRating": filters.min_rating,
                    "minPrice": filters.min_price,
                    "maxPrice": filters.max_price,
                    "sort": filters.sort,
                }.items()
                if v is not None
            },
            "professionals": [_brief(p) for p in professionals],
        }
        if not professionals:
            summary["message"] = "No professionals matched these filters."
        return ToolResult(summary, ProfessionalListContent(data=professionals))

    async def get_professional_details(self, args: ProfessionalArgs, locale: str = "en") -> ToolResult:
        pro = await self._marketplace.get_pro(args.pro_id)
        if pro is None:
            return ToolResult({"found": False, "message": f"Professional {args.pro_id} not found"})
        names = await self._category_names([(pro.get("categories") or [""])[0]])
        professional = _professional(pro, names)
        summary = {
            "found": True,
            "professional": {
                **_brief(professional),
                "completedJobs": professional.completed_jobs,
                "portfolioCount": professional.portfolio_count,
                "premium": professional.is_premium,
                "profileUrl": professional.profile_url,
            },
        }
        return ToolResult(summary, ProfessionalCardContent(data=professional))

    async def get_professional_reviews(
        self, args: ProfessionalReviewsArgs, locale: str = "en"
    ) -> ToolResult:
        rows = await self._marketplace.find_reviews(args.pro_id, args.limit)
        reviews = [
            ReviewSummary(
                id=str(r["id"]),
                rating=r["rating"],
                text=r.get("text"),
                client_name="Anonymous" if r.get("is_anonymous") else (r.get("client_name") or "Client"),
                is_anonymous=bool(r.get("is_anonymous")),
                is_verified=bool(r.get("is_verified")),
                source=r.get("source") or "homico",
                project_title=r.get("project_title"),
                created_at=r["created_at"],
            )
            for r in rows
        ]
        if not reviews:
            return ToolResult({"count": 0, "message": "This professional has no reviews yet."})
        summary = {
            "count": len(reviews),
            "averageRating": round(sum(r.rating for r in reviews) / len(reviews), 2),
            "reviews": [
                {"rating": r.rating, "client": r.client_name, "text": (r.text or "")[:200]}
                for r in reviews
            ],
        }
        return ToolResult(summary, ReviewListContent(data=reviews))

    async def get_categories(self, args: CategoriesArgs, locale: str = "en") -> ToolResult:
        if args.category_key:
            category = await self._marketplace.find_category(args.category_key)
            rows = [category] if category else []
        else:
            rows = await self._marketplace.find_categories()
        items = [
            CategorySummary(
                key=c["key"],
                name=c["name"],
                name_ka=c.get("name_ka"),
                icon=c.get("icon"),
                subcategory_count=len(c.get("subcategories") or []),
            )
            for c in rows
        ]
        summary = {
            "count": len(items),
            "categories": [
                {
                    "key": c["key"],
                    "name": c["name"],
                    "subcategories": [s["key"] for s in c.get("subcategories") or []],
                }
                for c in rows
            ],
        }
        return ToolResult(summary, CategoryListContent(data=items))

    async def get_price_ranges(self, args: PriceRangesArgs, locale: str = "en") -> ToolResult:
        filters = await self._filters_for(args.category)
        filters.limit = 100
        pros = await self._marketplace.find_pros(filters)
        name, name_ka = await self._categories.display_names(
            filters.category or filters.subcategory or args.category
        )
        report = build_price_report(name, name_ka, pros, self._currency)
        summary = {
            "category": report.category,
            "professionalCount": report.professional_count,
            "averagePrice": report.average_price.to_wire() if report.average_price else None,
            "tiers": [{"label": t.label, "min": t.min, "max": t.max} for t in report.price_ranges],
            "currency": self._currency,
            "note": report.note,
        }
        return ToolResult(summary, PriceInfoContent(data=report))

    async def explain_feature(self, args: ExplainFeatureArgs, locale: str = "en") -> ToolResult:
        locale = args.locale or locale
        key = knowledge_base.match_feature(args.feature)
        explanation = knowledge_base.get_feature_explanation(key) if key else None
        if explanation is None:
            # No phrase hit: fall back to a text search of walkthroughs, then FAQs.
            found = knowledge_base.search_knowledge(args.feature, locale)
            if found["features"]:
                explanation = found["features"][0]
            elif found["faqs"]:
                return ToolResult({"found": True, "faqs": _localized_faqs(found["faqs"], locale)})
            else:
                return ToolResult({"found": False, "message": f"No walkthrough for '{args.feature}'"})
        suffix = "" if locale == "en" else f"_{locale}"
        summary = {
            "found": True,
            "feature": explanation.feature,
            "title": getattr(explanation, f"title{suffix}", None) or explanation.title,
            "description": getattr(explanation, f"description{suffix}", None) or explanation.description,
            "steps": [getattr(s, f"title{suffix}", None) or s.title for s in explanation.steps],
            "actionUrl": explanation.action_url,
        }
        return ToolResult(summary, FeatureExplanationContent(data=explanation))
