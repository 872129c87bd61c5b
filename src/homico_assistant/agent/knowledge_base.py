import json
import logging
from functools import lru_cache
from importlib import resources
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Tuple

from ..rich_content import FeatureExplanation

logger = logging.getLogger(__name__)

# Checked in order; the first phrase contained in the request wins, so
# longer, more specific phrases come before the short ones they contain.
FEATURE_PHRASES: Tuple[Tuple[str, str], ...] = (
    ("register professional", "registration_pro"),
    ("register pro", "registration_pro"),
    ("become professional", "registration_pro"),
    ("become a pro", "registration_pro"),
    ("პროფესიონალად", "registration_pro"),
    ("პროფესიონალის რეგისტრაცია", "registration_pro"),
    ("როგორ გავხდე პროფესიონალი", "registration_pro"),
    ("სპეციალისტად რეგისტრაცია", "registration_pro"),
    ("как стать специалистом", "registration_pro"),
    ("регистрация специалиста", "registration_pro"),
    ("register client", "registration_client"),
    ("register", "registration_client"),
    ("sign up", "registration_client"),
    ("რეგისტრაცია", "registration_client"),
    ("დარეგისტრირება", "registration_client"),
    ("регистрация", "registration_client"),
    ("post job", "post_job"),
    ("post a job", "post_job"),
    ("create job", "post_job"),
    ("სამუშაოს განთავსება", "post_job"),
    ("განცხადება", "post_job"),
    ("разместить заказ", "post_job"),
    ("find professional", "find_professionals"),
    ("find pros", "find_professionals"),
    ("browse professional", "find_professionals"),
    ("პროფესიონალების პოვნა", "find_professionals"),
    ("მოძებნა", "find_professionals"),
    ("найти специалиста", "find_professionals"),
    ("estimate analyzer", "tool_analyzer"),
    ("analyze estimate", "tool_analyzer"),
    ("check estimate", "tool_analyzer"),
    ("analyzer", "tool_analyzer"),
    ("შეფასების ანალიზი", "tool_analyzer"),
    ("შეფასების შემოწმება", "tool_analyzer"),
    ("ანალიზატორი", "tool_analyzer"),
    ("анализатор сметы", "tool_analyzer"),
    ("проверить смету", "tool_analyzer"),
    ("compare estimates", "tool_compare"),
    ("estimate comparison", "tool_compare"),
    ("compare", "tool_compare"),
    ("შეფასებების შედარება", "tool_compare"),
    ("შედარება", "tool_compare"),
    ("сравнение смет", "tool_compare"),
    ("сравнить сметы", "tool_compare"),
    ("price database", "tool_prices"),
    ("prices database", "tool_prices"),
    ("market prices", "tool_prices"),
    ("renovation prices", "tool_prices"),
    ("ფასების ბაზა", "tool_prices"),
    ("რემონტის ფასები", "tool_prices"),
    ("საბაზრო ფასები", "tool_prices"),
    ("რა ღირს", "tool_prices"),
    ("база цен", "tool_prices"),
    ("цены на ремонт", "tool_prices"),
    ("cost calculator", "tool_calculator"),
    ("renovation calculator", "tool_calculator"),
    ("calculate cost", "tool_calculator"),
    ("calculator", "tool_calculator"),
    ("ღირებულების კალკულატორი", "tool_calculator"),
    ("რემონტის კალკულატორი", "tool_calculator"),
    ("კალკულატორი", "tool_calculator"),
    ("калькулятор", "tool_calculator"),
    ("pricing", "pricing"),
    ("price", "pricing"),
    ("cost", "pricing"),
    ("free", "pricing"),
    ("ფასი", "pricing"),
    ("ღირებულება", "pricing"),
    ("უფასო", "pricing"),
    ("цена", "pricing"),
    ("стоимость", "pricing"),
    ("verification", "verification"),
    ("verify", "verification"),
    ("verified", "verification"),
    ("ვერიფიკაცია", "verification"),
    ("დადასტურება", "verification"),
    ("верификация", "verification"),
    ("messaging", "messaging"),
    ("message", "messaging"),
    ("chat", "messaging"),
    ("შეტყობინება", "messaging"),
    ("ჩათი", "messaging"),
    ("сообщение", "messaging"),
    ("proposal", "proposals"),
    ("quote", "proposals"),
    ("შეთავაზება", "proposals"),
    ("წინადადება", "proposals"),
    ("предложение", "proposals"),
    ("review", "reviews"),
    ("rating", "reviews"),
    ("შეფასება", "reviews"),
    ("რეიტინგი", "reviews"),
    ("отзыв", "reviews"),
    ("portfolio", "portfolio"),
    ("პორტფოლიო", "portfolio"),
    ("портфолио", "portfolio"),
    ("how it works", "how_it_works"),
    ("how does it work", "how_it_works"),
    ("homico", "how_it_works"),
    ("როგორ მუშაობს", "how_it_works"),
    ("как работает", "how_it_works"),
    ("tools", "tools"),
    ("ხელსაწყოები", "tools"),
    ("კალკულატორები", "tools"),
    ("инструменты", "tools"),
    ("search", "find_professionals"),
)


@lru_cache(maxsize=1)
def _load() -> Tuple[Mapping[str, FeatureExplanation], Tuple[Dict[str, Any], ...]]:
    """Read the packaged knowledge base once; the result is read-only."""
    raw = json.loads(
        resources.files(__package__).joinpath("data/knowledge_base.json").read_text(encoding="utf-8")
    )
    features = {
        key: FeatureExplanation.model_validate(value) for key, value in raw["features"].items()
    }
    logger.debug("Loaded %d knowledge base features", len(features))
    return MappingProxyType(features), tuple(raw.get("faqs", []))


def features() -> Mapping[str, FeatureExplanation]:
    return _load()[0]


def faqs() -> Tuple[Dict[str, Any], ...]:
    return _load()[1]


def get_feature_explanation(feature_key: str) -> FeatureExplanation | None:
    return features().get(feature_key)


def match_feature(text: str) -> str | None:
    """Map a free-text feature request (EN/KA/RU) to a feature key."""
    lowered = str(text or "").strip().lower()
    if not lowered:
        return None
    if lowered in features():
        return lowered
    for phrase, key in FEATURE_PHRASES:
        if phrase in lowered:
            return key
    return None


def _localized(item: FeatureExplanation, attr: str, locale: str) -> str:
    suffix = "" if locale == "en" else f"_{locale}"
    return getattr(item, f"{attr}{suffix}", None) or getattr(item, attr)


def search_knowledge(query: str, locale: str = "en") -> Dict[str, List[Any]]:
    """Features and FAQs whose localized text contains the query."""
    needle = str(query or "").lower()
    matched_features = [
        item
        for item in features().values()
        if needle in _localized(item, "title", locale).lower()
        or needle in _localized(item, "description", locale).lower()
        or needle in item.feature.lower()
    ]
    matched_faqs = [
        faq
        for faq in faqs()
        if needle in (faq["question"].get(locale) or faq["question"]["en"]).lower()
        or needle in (faq["answer"].get(locale) or faq["answer"]["en"]).lower()
    ]
    return {"features": matched_features, "faqs": matched_faqs}
