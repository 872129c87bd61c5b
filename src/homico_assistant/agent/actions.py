"""Follow-up actions derived from a turn's rich content, or from its text as a fallback."""

from types import MappingProxyType
from typing import List, Mapping, Sequence, Tuple

from ..rich_content import (
    FeatureExplanationContent,
    RichContent,
    RichContentType,
    SuggestedAction,
)

MAX_ACTIONS = 3

# (url, {locale: label})
_ACTIONS: Mapping[str, Tuple[str, Mapping[str, str]]] = MappingProxyType(
    {
        "view_professionals": (
            "/professionals",
            {"en": "View All Professionals", "ka": "ყველა პროფესიონალი", "ru": "Все специалисты"},
        ),
        "post_job": (
            "/post-job",
            {"en": "Post a Job", "ka": "განცხადების დამატება", "ru": "Разместить заказ"},
        ),
        "get_quotes": (
            "/post-job",
            {"en": "Get Quotes", "ka": "შეთავაზებების მიღება", "ru": "Получить предложения"},
        ),
        "browse_categories": (
            "/categories",
            {"en": "Browse Categories", "ka": "კატეგორიების ნახვა", "ru": "Смотреть категории"},
        ),
        "browse_professionals": (
            "/professionals",
            {"en": "Browse Professionals", "ka": "პროფესიონალების ნახვა", "ru": "Найти специалистов"},
        ),
        "register": (
            "/register",
            {"en": "Register", "ka": "რეგისტრაცია", "ru": "Регистрация"},
        ),
    }
)

# Reply-text keywords, checked only when rich content yields nothing.
_TEXT_RULES: Tuple[Tuple[Tuple[str, ...], str], ...] = (
    (("professional", "პროფესიონალ", "специалист"), "browse_professionals"),
    (("post a job", "განცხადება", "разместить заказ"), "post_job"),
    (("register", "რეგისტრაცია", "регистрац"), "register"),
)

_PROFESSIONAL_TYPES = (RichContentType.PROFESSIONAL_LIST, RichContentType.PROFESSIONAL_CARD)


def _pick(locale: str, labels: Mapping[str, str]) -> str:
    return labels.get(locale) or labels["en"]


def make_action(key: str, locale: str = "en") -> SuggestedAction:
    url, labels = _ACTIONS[key]
    return SuggestedAction(
        type="link",
        label=_pick(locale, labels),
        label_en=labels["en"],
        label_ka=labels["ka"],
        label_ru=labels["ru"],
        url=url,
    )


def _feature_action(item: FeatureExplanationContent, locale: str) -> SuggestedAction:
    feature = item.data
    labels = {
        "en": feature.action_label or feature.title,
        "ka": feature.action_label_ka or feature.action_label or feature.title,
        "ru": feature.action_label_ru or feature.action_label or feature.title,
    }
    return SuggestedAction(
        type="link",
        label=_pick(locale, labels),
        label_en=labels["en"],
        label_ka=labels["ka"],
        label_ru=labels["ru"],
        url=feature.action_url,
    )


def suggest_actions(
    rich_content: Sequence[RichContent], reply_text: str = "", locale: str = "en"
) -> List[SuggestedAction]:
    """Build at most three follow-up actions, in fixed priority order.

    Rules append rather than replace: professional results, then price info,
    then feature walkthroughs with their own action, then category lists. The
    reply text is scanned only when none of those matched.
    """
    types = {item.type for item in rich_content}
    actions: List[SuggestedAction] = []

    if types.intersection(_PROFESSIONAL_TYPES):
        actions.append(make_action("view_professionals", locale))
        actions.append(make_action("post_job", locale))
    if RichContentType.PRICE_INFO in types:
        actions.append(make_action("get_quotes", locale))
    for item in rich_content:
        if isinstance(item, FeatureExplanationContent) and item.data.action_url:
            actions.append(_feature_action(item, locale))
            break
    if RichContentType.CATEGORY_LIST in types:
        actions.append(make_action("browse_categories", locale))

    if not actions:
        lowered = (reply_text or "").lower()
        for keywords, key in _TEXT_RULES:
            if any(word in lowered for word in keywords):
                actions.append(make_action(key, locale))

    return actions[:MAX_ACTIONS]
