"""Pydantic schemas for trust score results.

Field aliases are the camelCase keys stored in UserGameData.stats, so a
TrustScoreResult can be written to and read from the blob with
``model_dump(by_alias=True)`` / ``model_validate``.
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

TrustTier = Literal["bronze", "silver", "gold", "platinum", "diamond"]


class TrustScoreComponents(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    review_score: int = Field(ge=0, le=100, alias="reviewScore")
    completion_score: int = Field(ge=0, le=100, alias="completionScore")
    verification_score: int = Field(ge=0, le=100, alias="verificationScore")
    endorsement_score: int = Field(ge=0, le=100, alias="endorsementScore")
    activity_score: int = Field(ge=0, le=100, alias="activityScore")
    dispute_score: int = Field(ge=0, le=100, alias="disputeScore")


class TrustScoreResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    score: int = Field(ge=0, le=100)
    tier: TrustTier
    components: TrustScoreComponents
    last_calculated: datetime = Field(alias="lastCalculated")
    next_milestone: int = Field(alias="nextMilestone")
    recommendations: list[str] = Field(default_factory=list)


class TrustHistoryEntry(BaseModel):
    score: int
    timestamp: datetime


class TrustBadge(BaseModel):
    name: str
    icon: str
    color: str
    description: str
