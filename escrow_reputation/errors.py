"""Domain exceptions raised by the query and service layers.

Database errors from SQLAlchemy are never wrapped; these cover only the
business-rule failures a caller is expected to handle.
"""


class ReputationError(Exception):
    """Base class for all domain errors in this package."""


class UserNotFoundError(ReputationError):
    def __init__(self, user_id: int):
        super().__init__(f"User {user_id} not found")
        self.user_id = user_id


class ReviewNotFoundError(ReputationError):
    def __init__(self, review_id: int, review_type: str):
        super().__init__(f"{review_type.capitalize()} review {review_id} not found")
        self.review_id = review_id
        self.review_type = review_type


class ReferralCodeError(ReputationError):
    """Raised for unknown, inactive, or exhausted referral codes."""


class DisputeError(ReputationError):
    """Raised when a dispute cannot be opened or resolved."""
