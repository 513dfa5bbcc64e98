"""Markdown renderers for the statistics and limits messages."""

from __future__ import annotations

from telegram.helpers import escape_markdown

from .entities import LimitStatus, StatsSnapshot

BAR_LENGTH = 12
WARNING_COVERAGE = 0.85


def money(amount: float, currency: str) -> str:
    return f"{amount:.0f} {currency}"


def progress_bar(value: float, length: int = BAR_LENGTH) -> str:
    clamped = min(max(value, 0.0), 1.0)
    filled = round(clamped * length)
    return "▰" * filled + "▱" * (length - filled)


def render_summary(stats: StatsSnapshot) -> str:
    return "\n".join(
        [
            "*📊 Quick overview*",
            f"Today: {money(stats.today, stats.currency)}",
            f"Week: {money(stats.week, stats.currency)}",
            f"Month: {money(stats.month, stats.currency)}",
        ]
    )


def render_categories(stats: StatsSnapshot) -> str:
    if not stats.categories:
        return "No categories this month yet — add your first purchase."

    lines = ["*💡 Categories this month*"]
    for category in stats.categories:
        badge = ""
        limit_line = ""
        if category.limit is not None:
            if category.limit.exceeded:
                badge = " 🚨"
            elif category.limit.coverage > WARNING_COVERAGE:
                badge = " ⚠️"
            else:
                badge = " 🎯"
            limit_line = f" — {category.limit.spent:.0f} / {category.limit.amount:.0f}"
        name = escape_markdown(category.name)
        lines.append(
            f"{category.emoji or '•'} {name}: {money(category.total, stats.currency)}{limit_line}\n"
            f"{progress_bar(category.share)}{badge}"
        )
    return "\n".join(lines)


def render_recent(stats: StatsSnapshot) -> str:
    if not stats.recent:
        return "No purchases yet. Tap “➕ Add expense”."

    lines = ["*🧾 Recent purchases*"]
    for item in stats.recent:
        note = f" — {escape_markdown(item.note)}" if item.note else ""
        lines.append(
            f"{item.category_emoji or '•'} {item.spent_at:%d.%m %H:%M}: "
            f"{money(item.amount, stats.currency)}{note}"
        )
    return "\n".join(lines)


def render_stats(stats: StatsSnapshot) -> str:
    return "\n\n".join([render_summary(stats), render_categories(stats), render_recent(stats)])


def render_limit_line(status: LimitStatus, currency: str) -> str:
    if status.exceeded:
        badge = "🚨"
    elif status.coverage >= status.threshold:
        badge = "⚠️"
    else:
        badge = "🎯"
    return (
        f"{badge} {status.emoji or '🎯'} {escape_markdown(status.category_name)}: "
        f"{status.spent:.0f} / {status.amount:.0f} {currency}\n"
        f"{progress_bar(status.coverage)}"
    )


def render_limit_warning(status: LimitStatus) -> str:
    return "\n".join(
        [
            "⚠️ *Limit almost used up!*",
            f"{status.emoji or '💰'} {escape_markdown(status.category_name)}",
            f"Spent {status.spent:.0f} / {status.amount:.0f}",
            f"Left: {status.remaining:.0f}",
        ]
    )
