from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ReviewStats(BaseModel):
    total_reviews: int = 0
    average_rating: float = 0.0
    rating_breakdown: dict[int, int] = Field(
        default_factory=lambda: {1: 0, 2: 0, 3: 0, 4: 0, 5: 0}
    )
    detailed_ratings: dict[str, float] = Field(default_factory=dict)
    response_rate: float = 0.0


class ReviewAggregate(BaseModel):
    """Review count and average for one side of the marketplace."""

    count: int = 0
    average: float = 0.0


class DisputeAggregate(BaseModel):
    total: int = 0
    upheld: int = 0
    dismissed: int = 0


class EndorsementAggregate(BaseModel):
    count: int = 0
    average_rating: float = 0.0
    verified_count: int = 0
    unique_endorsers: int = 0


class ReviewStreak(BaseModel):
    """On-time review streak, stored under stats["reviewStreak"]."""

    model_config = ConfigDict(populate_by_name=True)

    current: int = 0
    longest: int = 0
    last_review_date: Optional[datetime] = Field(default=None, alias="lastReviewDate")
    total_on_time: int = Field(default=0, alias="totalOnTime")
