"""Gamification domain exceptions."""


class GamificationError(Exception):
    """Base class for gamification engine errors."""


class CriteriaError(GamificationError):
    """An achievement criteria blob could not be parsed."""


class BookingNotFoundError(GamificationError):
    """The booking referenced by a session-completion event does not exist."""

    def __init__(self, booking_id: int) -> None:
        super().__init__(f"Booking {booking_id} not found")
        self.booking_id = booking_id
