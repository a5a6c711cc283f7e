from .trust import TrustBadge, TrustHistoryEntry, TrustScoreComponents, TrustScoreResult
from .review import (
    DisputeAggregate,
    EndorsementAggregate,
    ReviewAggregate,
    ReviewStats,
    ReviewStreak,
)
from .referral import LeaderboardEntry, ReferralDashboard, ReferralStats, TierBenefits
from .achievement import AchievementProgress

__all__ = [
    "TrustBadge",
    "TrustHistoryEntry",
    "TrustScoreComponents",
    "TrustScoreResult",
    "DisputeAggregate",
    "EndorsementAggregate",
    "ReviewAggregate",
    "ReviewStats",
    "ReviewStreak",
    "LeaderboardEntry",
    "ReferralDashboard",
    "ReferralStats",
    "TierBenefits",
    "AchievementProgress",
]
