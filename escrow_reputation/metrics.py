from prometheus_client import Counter, Histogram

# Trust score metrics
trust_calculations = Counter(
    "escrow_trust_calculations_total",
    "Total trust score calculations",
    ["status"],  # status: success | error
)

trust_score_distribution = Histogram(
    "escrow_trust_score",
    "Distribution of computed trust scores",
    buckets=[10, 20, 30, 40, 50, 60, 70, 80, 90, 100],
)

trust_decays_applied = Counter(
    "escrow_trust_decays_total",
    "Trust score decay evaluations",
    ["outcome"],  # outcome: decayed | active | error
)

# Achievement metrics
achievements_awarded = Counter(
    "escrow_achievements_awarded_total",
    "Achievements minted",
    ["achievement_id"],
)

achievement_check_errors = Counter(
    "escrow_achievement_check_errors_total",
    "Achievement predicate evaluations that raised",
    ["achievement_id"],
)

# Gamification metrics
referral_rewards = Counter(
    "escrow_referral_rewards_total",
    "Referral rewards granted",
    ["reward_type"],
)

xp_awarded = Counter(
    "escrow_xp_awarded_total",
    "Experience points awarded",
    ["source"],
)
