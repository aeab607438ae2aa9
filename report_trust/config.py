"""Core application configuration & tunable trust rules.

All rules that may evolve (consensus weights, confirmation threshold, fake
detection weights, clustering heuristics, retry/circuit thresholds, queue
priorities) are centralized here so they can be adjusted without diving into
service logic. Deployment knobs come from environment variables; everything
else is kept as module constants (mutable dicts so tests can monkeypatch
values).
"""
from __future__ import annotations

import os

# ---------------------------- Consensus Scoring ---------------------------- #
# Score is an integer in [0, 100]. Components add up to 100 at most.
CONSENSUS_SCORING: dict[str, float | int | dict[str, int]] = {
	"vote_weight": 40,                  # netVoteRatio * 40
	"neutral_vote_ratio": 0.5,          # used when nobody has voted yet
	"verification_weight": 25,          # capped verifications / cap * 25
	"verification_cap": 10,
	"ai_weight": 20,                    # aiValidationScore / 100 * 20
	"ai_neutral_score": 50,             # assumed when no classifier score exists
	"confirmation_bonus": 15,           # flat bonus while confirmed
	"min_score": 0,
	"max_score": 100,
	# Presentation tiers (lower bounds), evaluated top-down.
	"tiers": {
		"Highly Trusted": 80,
		"Trusted": 60,
		"Moderate": 40,
		"Low Trust": 20,
	},
}

# ------------------------------ Confirmation ------------------------------ #
CONFIRMATION_SETTINGS: dict[str, int] = {
	"min_verifications": 3,   # verificationCount needed before official confirmation
}

# ----------------------------- Fake Detection ----------------------------- #
FAKE_DETECTION_SETTINGS: dict[str, object] = {
	"weights": {
		"spam_pattern": 30,
		"excessive_caps": 15,
		"repeated_text": 20,
		"low_consistency": 25,
		"missing_metadata": 10,
		"gps_mismatch": 40,
		"stale_timestamp": 35,
		"edited_image": 20,
		"similar_reports": 30,
		"new_user_critical_report": 25,
		"burst_submission": 20,
	},
	"max_score": 100,
	"low_consistency_threshold": 50,
	"duplicate_confidence_threshold": 0.85,  # cluster confidence that raises duplicate_content
	"gps_match_radius_km": 10.0,
	"recent_capture_days": 7,
	"burst_window_hours": 1,
	"burst_max_reports": 2,                  # more than this within the window is a burst
	"editing_software": ["photoshop", "gimp", "lightroom", "pixlr", "canva", "illustrator", "affinity"],
	# Risk tiers (lower bounds), evaluated top-down.
	"risk_tiers": {
		"critical": 75,
		"high": 50,
		"medium": 25,
	},
	# External image analyzer (optional). Unset URL disables image analysis.
	"image_analyzer_url": os.getenv("ANALYZER_URL") or None,
	"analyzer_timeout_seconds": float(os.getenv("ANALYZER_TIMEOUT_SECONDS", "5")),
}

# ------------------------------- Clustering ------------------------------- #
CLUSTERING_SETTINGS: dict[str, float | int | dict[str, float]] = {
	"radius_km": 5.0,
	"window_hours": 24,
	"time_similarity_floor": 0.3,        # 1 - hours/window must exceed this to count
	"text_similarity_threshold": 0.4,   # description similarity counted as a match reason
	"title_similarity_threshold": 0.5,
	"match_threshold": 0.7,             # weighted similarity needed to join a cluster
	"min_reasons": 2,                   # at least this many criteria must contribute
	"default_limit": 100,
	"max_limit": 1000,
	"interval_seconds": float(os.getenv("CLUSTERING_INTERVAL_SECONDS", "0")),  # 0 disables scheduler
	"weights": {
		"title": 2.5,
		"description": 2.0,
		"type": 1.5,
		"severity": 0.5,
		"location": 2.0,
		"time": 1.0,
	},
}

# --------------------------- Mutation Retry Policy -------------------------- #
# Internally issued writes that hit a concurrent version bump are retried.
MUTATION_RETRY: dict[str, int | float] = {
	"max_attempts": 5,
	"base_seconds": 0.01,
	"factor": 2,
	"max_seconds": 0.5,
	"jitter_pct": 0.10,
}

# ----------------------------- Circuit Breaker ---------------------------- #
CIRCUIT_BREAKER: dict[str, int | float] = {
	"failure_threshold": 5,          # Consecutive failures before OPEN
	"open_cooldown_seconds": 300,    # Stay OPEN for 5 minutes
	"half_open_probe_count": 3,      # Probes allowed in HALF_OPEN
}

# --------------------------------- Backoff -------------------------------- #
BACKOFF_POLICY: dict[str, int | float] = {
	"base_seconds": 1,
	"factor": 2,          # Exponential factor
	"max_seconds": 60,
	"max_attempts": 3,
	"jitter_pct": 0.10,   # +/-10% jitter
}

# --------------------------------- Queue ---------------------------------- #
QUEUE_SETTINGS: dict[str, dict[str, int] | int] = {
	"priorities": {  # Lower number = higher priority
		"high": 0,
		"normal": 5,
		"low": 10,
	},
	"warn_depth": 1000,
	"max_in_memory": 5000,
}

# ------------------------------- Notifier --------------------------------- #
# Optional mirror of every change event onto a Redis pub/sub channel so other
# processes can follow the stream.
NOTIFIER_SETTINGS: dict[str, str | int | float | None] = {
	"redis_url": os.getenv("NOTIFIER_REDIS_URL") or None,
	"redis_channel": os.getenv("NOTIFIER_REDIS_CHANNEL", "report_trust:events"),
	"redis_health_check_timeout": 2.0,  # connect timeout for the mirror and health pings
	"redis_socket_timeout": 2.0,       # read/write timeout for mirror publishes
	"redis_mirror_buffer": 1000,       # queued events awaiting the mirror thread before drops
	"websocket_buffer": 256,    # per-connection pending messages before drops
}

__all__ = [
	"CONSENSUS_SCORING",
	"CONFIRMATION_SETTINGS",
	"FAKE_DETECTION_SETTINGS",
	"CLUSTERING_SETTINGS",
	"MUTATION_RETRY",
	"CIRCUIT_BREAKER",
	"BACKOFF_POLICY",
	"QUEUE_SETTINGS",
	"NOTIFIER_SETTINGS",
]
