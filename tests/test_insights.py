from datetime import date

from aggregation import DailyTrendPoint
from insights import count_overspending_days, generate_insights


def titles(insights) -> list[str]:
    return [i.title for i in insights]


def test_savings_rate_tiers() -> None:
    excellent = generate_insights(100_000, 75_000, 0, 0)
    assert excellent[0].title == "Excellent Savings!"
    assert excellent[0].severity == "success"
    assert "25.0%" in excellent[0].description

    assert generate_insights(100_000, 85_000, 0, 0)[0].title == "Good Savings Rate"
    assert generate_insights(100_000, 95_000, 0, 0)[0].title == "Low Savings"

    overspent = generate_insights(100_000, 110_000, 0, 0)[0]
    assert overspent.title == "Overspending Alert"
    assert overspent.severity == "danger"


def test_no_income_counts_as_low_savings() -> None:
    insights = generate_insights(0, 0, 0, 0)
    assert titles(insights) == ["Low Savings"]


def test_month_over_month_changes() -> None:
    insights = generate_insights(120_000, 50_000, 100_000, 40_000)
    assert titles(insights) == [
        "Excellent Savings!",
        "Income Increase!",
        "Expenses Spike",
    ]
    assert "20.0%" in insights[1].description
    assert "25.0%" in insights[2].description

    insights = generate_insights(80_000, 30_000, 100_000, 40_000)
    assert titles(insights)[1:] == ["Income Decrease", "Expenses Reduced!"]
    assert "20.0%" in insights[1].description
    assert "25.0%" in insights[2].description


def test_small_changes_and_missing_history_are_silent() -> None:
    assert titles(generate_insights(105_000, 50_000, 100_000, 48_000)) == [
        "Excellent Savings!"
    ]
    assert titles(generate_insights(105_000, 50_000, 0, 0)) == ["Excellent Savings!"]


def test_budget_rules() -> None:
    alert = generate_insights(100_000, 50_000, 0, 0, budgets_overspent=2)
    assert alert[-1].title == "Budget Alert"
    assert "2 budget(s)" in alert[-1].description

    on_track = generate_insights(100_000, 50_000, 0, 0, budgets_on_track=3)
    assert on_track[-1].title == "Budgets On Track"
    assert "All 3" in on_track[-1].description


def test_frequent_overspending_days() -> None:
    daily = [
        DailyTrendPoint(day=d, date=date(2025, 3, d), income_cents=0, expense_cents=500)
        for d in range(1, 9)
    ] + [
        DailyTrendPoint(day=d, date=date(2025, 3, d), income_cents=0, expense_cents=0)
        for d in range(9, 11)
    ]
    assert count_overspending_days(daily) == 8

    insights = generate_insights(100_000, 4_000, 0, 0, daily=daily)
    assert insights[-1].title == "Frequent Overspending Days"
    assert "8 days" in insights[-1].description

    # Exactly 70% is not "more than" the threshold.
    daily[7] = DailyTrendPoint(
        day=8, date=date(2025, 3, 8), income_cents=0, expense_cents=0
    )
    assert "Frequent Overspending Days" not in titles(
        generate_insights(100_000, 3_500, 0, 0, daily=daily)
    )


def test_threshold_values() -> None:
    # Savings tiers are inclusive at 20% and 10%.
    assert titles(generate_insights(100_000, 80_000, 0, 0)) == ["Excellent Savings!"]
    assert titles(generate_insights(100_000, 90_000, 0, 0)) == ["Good Savings Rate"]
    assert titles(generate_insights(100_000, 100_000, 0, 0)) == ["Low Savings"]

    # Month-over-month changes must exceed the threshold to be reported.
    assert titles(generate_insights(110_000, 10_000, 100_000, 0)) == [
        "Excellent Savings!"
    ]
    assert titles(generate_insights(90_000, 10_000, 100_000, 0)) == [
        "Excellent Savings!"
    ]
    assert titles(generate_insights(100_000, 12_000, 0, 10_000)) == [
        "Excellent Savings!"
    ]
    assert titles(generate_insights(100_000, 9_000, 0, 10_000)) == [
        "Excellent Savings!"
    ]
