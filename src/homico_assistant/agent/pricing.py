"""Budget / mid-range / premium bands computed from observed professional prices."""

import math
from typing import Any, Dict, Iterable, List, Sequence, Tuple

from ..rich_content import AveragePrice, PriceReport, PriceTier

TIER_LABELS = (
    {"en": "Budget", "ka": "ეკონომიური", "ru": "Бюджетный"},
    {"en": "Mid-range", "ka": "საშუალო", "ru": "Средний"},
    {"en": "Premium", "ka": "პრემიუმ", "ru": "Премиум"},
)

NOTE_VARIES = {
    "en": "Prices may vary based on project scope and complexity.",
    "ka": "ფასები შეიძლება განსხვავდებოდეს პროექტის მოცულობისა და სირთულის მიხედვით.",
    "ru": "Цены могут отличаться в зависимости от объёма и сложности проекта.",
}

NOTE_CONTACT_DIRECTLY = {
    "en": "Contact professionals directly for pricing information.",
    "ka": "დაუკავშირდით პროფესიონალებს ფასების შესახებ ინფორმაციისთვის.",
    "ru": "Свяжитесь со специалистами напрямую, чтобы узнать цены.",
}


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _at(values: Sequence[float], fraction: float, fallback: float) -> float:
    index = math.floor(len(values) * fraction)
    return values[index] if index < len(values) else fallback


def price_quotes(pros: Iterable[Dict[str, Any]]) -> List[Tuple[float, float]]:
    """(min, max) per priced professional; an unset max defaults to the min."""
    return [
        (float(p["base_price"]), float(p.get("max_price") or p["base_price"]))
        for p in pros
        if p.get("base_price")
    ]


def calculate_tiers(
    quotes: Sequence[Tuple[float, float]], currency: str = "GEL"
) -> Tuple[AveragePrice | None, List[PriceTier]]:
    if not quotes:
        return None, []

    mins = sorted(q[0] for q in quotes)
    maxs = sorted(q[1] for q in quotes)
    avg_min = _round_half_up(sum(mins) / len(mins))
    avg_max = _round_half_up(sum(maxs) / len(maxs))

    p33 = _at(mins, 0.33, avg_min)
    p66 = _at(mins, 0.66, avg_min)
    bounds = ((mins[0], p33), (p33, p66), (p66, maxs[-1]))

    tiers = [
        PriceTier(
            label=labels["en"],
            label_ka=labels["ka"],
            label_ru=labels["ru"],
            min=low,
            max=high,
            currency=currency,
        )
        for labels, (low, high) in zip(TIER_LABELS, bounds)
    ]
    return AveragePrice(min=avg_min, max=avg_max, currency=currency), tiers


def build_price_report(
    category: str,
    category_ka: str | None,
    pros: List[Dict[str, Any]],
    currency: str = "GEL",
) -> PriceReport:
    """PRICE_INFO payload for a category; empty tiers when nobody lists a price."""
    average, tiers = calculate_tiers(price_quotes(pros), currency)
    note = NOTE_VARIES if tiers else NOTE_CONTACT_DIRECTLY
    return PriceReport(
        category=category,
        category_ka=category_ka,
        average_price=average,
        price_ranges=tiers,
        professional_count=len(pros),
        note=note["en"],
        note_ka=note["ka"],
        note_ru=note["ru"],
    )
