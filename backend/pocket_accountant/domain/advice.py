from __future__ import annotations

from datetime import datetime

from telegram.helpers import escape_markdown

from .entities import StatsSnapshot

MAX_TIPS = 3
DOMINANT_SHARE = 0.45
LIMIT_COVERAGE_WARNING = 0.75
SMALL_CATEGORY_SHARE = 0.05
IDLE_DAYS = 3


def build_recommendations(
    stats: StatsSnapshot,
    last_purchase_at: datetime | None = None,
    now: datetime | None = None,
) -> list[str]:
    """Heuristic budgeting tips derived from the current month's snapshot."""
    tips: list[str] = []
    top = stats.categories[0] if stats.categories else None
    top_name = escape_markdown(top.name) if top else ""

    if top and top.share > DOMINANT_SHARE:
        tips.append(
            f"{top.emoji or '📌'} Category *{top_name}* takes {top.share * 100:.0f}% of the budget. "
            "Consider a soft limit or a daily checklist."
        )

    if top and top.limit is not None and top.limit.exceeded:
        tips.append(
            f"🚨 The limit for *{top_name}* is exceeded. "
            "Keep only the essential spending and move the rest to next month."
        )
    elif top and top.limit_coverage is not None and top.limit_coverage > LIMIT_COVERAGE_WARNING:
        tips.append(
            f"⚠️ {100 - top.limit_coverage * 100:.0f}% of the *{top_name}* limit is left. "
            "Check subscriptions and automatic payments."
        )

    if stats.week > stats.month * 0.5:
        tips.append("📈 Weekly spending is catching up with the monthly total. Try a strict “saving week”.")

    if len(stats.categories) >= 3:
        tail = [category for category in stats.categories[-2:] if category.share < SMALL_CATEGORY_SHARE]
        if len(tail) == 2:
            tips.append(
                "🧺 Some categories are under 5%. Merge them into “Other” to focus on the big expenses."
            )

    if last_purchase_at is not None and now is not None:
        if (now - last_purchase_at).days >= IDLE_DAYS:
            tips.append("⏱ No records for a few days. Log your receipts so you don't lose track.")

    if not tips:
        tips.append("✨ Your budget looks stable. Keep logging expenses at the same pace.")

    return tips[:MAX_TIPS]
