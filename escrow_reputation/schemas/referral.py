"""Pydantic schemas for referral statistics and the referral dashboard."""

from typing import Literal, Optional

from pydantic import BaseModel, Field

ReferralTier = Literal["bronze", "silver", "gold", "platinum"]


class ReferralStats(BaseModel):
    total_referrals: int = 0
    active_referrals: int = 0
    total_clicks: int = 0
    conversion_rate: float = 0.0
    pending_rewards: int = 0
    total_rewards_earned: int = 0
    tier: ReferralTier = "bronze"
    next_tier_progress: int = Field(default=0, ge=0, le=100)


class TierBenefits(BaseModel):
    bonus_percent: int
    perks: str


class LeaderboardEntry(BaseModel):
    rank: int
    user_id: int
    name: Optional[str] = None
    referral_count: int


class ReferralDashboard(BaseModel):
    stats: ReferralStats
    referral_link: Optional[str] = None
    leaderboard: list[LeaderboardEntry]
    tier_benefits: TierBenefits
    next_tier: Optional[ReferralTier] = None
    referrals_to_next_tier: int = 0
