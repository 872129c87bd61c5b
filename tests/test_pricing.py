from homico_assistant.agent.pricing import (
    NOTE_CONTACT_DIRECTLY,
    NOTE_VARIES,
    build_price_report,
    calculate_tiers,
    price_quotes,
)


def test_tiers_from_five_prices_are_deterministic() -> None:
    """Cut points come from the 33rd/66th percentile indices of the sorted minimums."""
    quotes = [(300, 300), (100, 100), (250, 250), (150, 150), (200, 200)]
    runs = [calculate_tiers(quotes) for _ in range(3)]
    assert all(run == runs[0] for run in runs)

    average, tiers = runs[0]
    assert [(t.label, t.min, t.max) for t in tiers] == [
        ("Budget", 100, 150),
        ("Mid-range", 150, 250),
        ("Premium", 250, 300),
    ]
    assert (average.min, average.max) == (200, 200)
    assert tiers[0].label_ka == "ეკონომიური"
    assert tiers[2].label_ru == "Премиум"
    assert all(t.currency == "GEL" for t in tiers)


def test_premium_top_is_highest_maximum() -> None:
    _, tiers = calculate_tiers([(50, 120), (60, 200), (80, 300), (100, 100)])
    assert [(t.min, t.max) for t in tiers] == [(50, 60), (60, 80), (80, 300)]


def test_averages_round_half_up() -> None:
    average, _ = calculate_tiers([(50, 120), (60, 200), (80, 300), (100, 100)])
    assert (average.min, average.max) == (73, 180)


def test_single_quote_uses_it_for_every_band() -> None:
    average, tiers = calculate_tiers([(90, 150)], currency="USD")
    assert [(t.min, t.max) for t in tiers] == [(90, 90), (90, 90), (90, 150)]
    assert average.currency == "USD"


def test_no_quotes_gives_no_bands() -> None:
    assert calculate_tiers([]) == (None, [])


def test_price_quotes_skips_unpriced_and_defaults_max() -> None:
    pros = [
        {"base_price": 100, "max_price": None},
        {"base_price": None, "max_price": 500},
        {"base_price": 80, "max_price": 160},
    ]
    assert price_quotes(pros) == [(100.0, 100.0), (80.0, 160.0)]


def test_report_without_prices_asks_to_contact_directly() -> None:
    report = build_price_report("Mural", "მალიარი", [{"base_price": None}, {}])
    assert report.price_ranges == []
    assert report.average_price is None
    assert report.professional_count == 2
    assert report.note == NOTE_CONTACT_DIRECTLY["en"]
    assert report.note_ka == NOTE_CONTACT_DIRECTLY["ka"]


def test_report_with_prices() -> None:
    report = build_price_report("Plumbing", None, [{"base_price": 100, "max_price": 200}])
    assert len(report.price_ranges) == 3
    assert report.note == NOTE_VARIES["en"]
    wire = report.to_wire()
    assert wire["priceRanges"][0]["labelKa"] == "ეკონომიური"
    assert wire["averagePrice"] == {"min": 100, "max": 200, "currency": "GEL"}
