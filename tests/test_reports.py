from datetime import datetime

from pocket_accountant.domain.entities import CategoryShare, LimitStatus, Purchase, StatsSnapshot
from pocket_accountant.domain.reports import (
    money,
    progress_bar,
    render_limit_line,
    render_limit_warning,
    render_stats,
)


def _status(spent: float, amount: float = 1000, threshold: float = 0.75) -> LimitStatus:
    return LimitStatus(
        limit_id=1,
        category_id=1,
        category_name="Groceries",
        emoji="🥗",
        spent=spent,
        amount=amount,
        threshold=threshold,
    )


def test_money_has_no_decimals():
    assert money(650.4, "RUB") == "650 RUB"


def test_progress_bar_is_clamped():
    assert progress_bar(0) == "▱" * 12
    assert progress_bar(0.5) == "▰" * 6 + "▱" * 6
    assert progress_bar(1.7) == "▰" * 12
    assert progress_bar(-1) == "▱" * 12


def test_limit_line_badges():
    assert render_limit_line(_status(100), "RUB").startswith("🎯 🥗 Groceries: 100 / 1000 RUB")
    assert render_limit_line(_status(800), "RUB").startswith("⚠️")
    assert render_limit_line(_status(1200), "RUB").startswith("🚨")


def test_limit_warning_mentions_remaining():
    text = render_limit_warning(_status(800))

    assert text.splitlines() == [
        "⚠️ *Limit almost used up!*",
        "🥗 Groceries",
        "Spent 800 / 1000",
        "Left: 200",
    ]


def test_empty_stats():
    text = render_stats(StatsSnapshot(today=0, week=0, month=0, currency="RUB"))

    assert "Today: 0 RUB" in text
    assert "No categories this month yet" in text
    assert "No purchases yet" in text


def test_stats_with_categories_and_recent():
    stats = StatsSnapshot(
        today=100,
        week=300,
        month=600,
        currency="RUB",
        categories=[
            CategoryShare(name="Home", emoji="🏠", total=500, share=500 / 600),
            CategoryShare(name="Groceries", emoji="🥗", total=100, share=100 / 600, limit=_status(1200)),
        ],
        recent=[
            Purchase(
                id=1,
                category_id=1,
                category_name="Groceries",
                category_emoji="🥗",
                amount=100,
                note="Bread",
                spent_at=datetime(2024, 5, 15, 12, 0),
            )
        ],
    )

    text = render_stats(stats)

    assert "🏠 Home: 500 RUB" in text
    assert "🥗 Groceries: 100 RUB — 1200 / 1000" in text
    assert "🚨" in text
    assert "🥗 15.05 12:00: 100 RUB — Bread" in text


def test_user_text_is_escaped_for_markdown():
    status = LimitStatus(
        limit_id=1,
        category_id=1,
        category_name="Take_away *food*",
        emoji=None,
        spent=100,
        amount=1000,
        threshold=0.75,
    )
    stats = StatsSnapshot(
        today=100,
        week=100,
        month=100,
        currency="RUB",
        categories=[CategoryShare(name="Take_away *food*", emoji=None, total=100, share=1.0, limit=status)],
        recent=[
            Purchase(
                id=1,
                category_id=1,
                category_name="Take_away *food*",
                category_emoji=None,
                amount=100,
                note="my_note with [link",
                spent_at=datetime(2024, 5, 15, 12, 0),
            )
        ],
    )

    text = render_stats(stats)

    assert "my\\_note with \\[link" in text
    assert "my_note" not in text
    assert "• Take\\_away \\*food\\*: 100 RUB" in text
    assert "Take\\_away \\*food\\*: 100 / 1000 RUB" in render_limit_line(status, "RUB")
    assert "💰 Take\\_away \\*food\\*" in render_limit_warning(status)
