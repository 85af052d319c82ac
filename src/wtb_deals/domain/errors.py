"""Errors raised by deal transitions.

Every error carries a short, user-facing message. The API layer renders it
as the single reply for the triggering event.
"""


class DealError(Exception):
    """Base class for failures that are reported back to the acting user."""

    default_message = "Something went wrong. Try again or contact staff."

    def __init__(self, message: str | None = None) -> None:
        self.user_message = message or self.default_message
        super().__init__(self.user_message)


class NotFoundError(DealError):
    """A referenced deal, seller or message does not exist."""

    default_message = "Could not find that deal."


class UnauthorizedError(DealError):
    """The acting user may not perform this transition."""

    default_message = "You are not authorized to do that."


class InvalidStateError(DealError):
    """The deal is not in a state that allows this transition."""

    default_message = "This deal cannot do that right now."


class ExternalIOError(DealError):
    """The record store or the messaging platform call failed."""

    default_message = "Something went wrong while saving. Please try again."


class SessionExpiredError(DealError):
    """A time-boxed upload session lapsed."""

    default_message = "Your upload session expired. Please start this step again."
