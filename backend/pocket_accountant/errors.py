"""Exception hierarchy for the bot.

Every error carries a message that is safe to show to the user. Input errors
are recoverable and handled where the text was parsed; ``NotFound`` and
``InternalError`` end the current conversation flow.
"""

from __future__ import annotations


class PocketAccountantError(Exception):
    """Base exception for all bot errors."""

    default_message = "Something went wrong. Please try again later."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


class InputError(PocketAccountantError):
    """User-correctable validation failure of free-text input."""


class InvalidFormat(InputError):
    """Structured line has too few parts."""

    default_message = "Use the format: amount; category; note (optional)."


class InvalidAmount(InputError):
    """Amount is missing, not a number, not finite or not positive."""

    default_message = "The amount must be a positive number."


class InvalidCategory(InputError):
    """Category name is shorter than two characters."""

    default_message = "The category name must be at least 2 characters long."


class NotFound(PocketAccountantError):
    """A referenced record vanished between the prompt and its completion."""

    default_message = "Category not found."


class InternalError(PocketAccountantError):
    """Persistence or platform failure."""
