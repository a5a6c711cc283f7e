from .base import Base
from .user import User, UserGameData
from .job import BidStatus, JobBid, JobMilestone, JobPosting, JobStatus, MilestoneStatus
from .review import (
    ClientReview,
    DisputeResolution,
    DisputeStatus,
    FreelancerReview,
    ReviewDispute,
    ReviewType,
)
from .reputation import BadgeType, ReputationRegistry, SkillEndorsement, VerificationBadge
from .achievement import Achievement
from .referral import ReferralConversion, ReferralLink, RewardStatus
from .earnings import Earning, Withdrawal
from .faq import FaqCategory, FaqItem, FaqVote

__all__ = [
    "Base",
    "User",
    "UserGameData",
    "JobPosting",
    "JobStatus",
    "JobMilestone",
    "MilestoneStatus",
    "JobBid",
    "BidStatus",
    "FreelancerReview",
    "ClientReview",
    "ReviewDispute",
    "ReviewType",
    "DisputeStatus",
    "DisputeResolution",
    "SkillEndorsement",
    "VerificationBadge",
    "BadgeType",
    "ReputationRegistry",
    "Achievement",
    "ReferralLink",
    "ReferralConversion",
    "RewardStatus",
    "Earning",
    "Withdrawal",
    "FaqCategory",
    "FaqItem",
    "FaqVote",
]
