"""Consensus scoring (0-100 integer scale).

Pure function of a report's current signals; recomputed after every mutation
of votes, verifications, confirmation or the classifier score. Arithmetic is
done in Decimal and rounded half-up so that e.g. 80.5 becomes 81.
"""
from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from report_trust.config import CONSENSUS_SCORING


def _d(value: float | int) -> Decimal:
    return Decimal(str(value))


def compute_consensus_score(
    upvotes: int,
    downvotes: int,
    verification_count: int,
    ai_validation_score: Optional[float],
    confirmed: bool,
) -> int:
    """Derive the consensus score from raw signals.

    Args:
        upvotes / downvotes: current vote tally
        verification_count: number of distinct verifications
        ai_validation_score: external classifier score (0-100) or None
        confirmed: whether an official confirmation is in place
    Returns:
        integer score clamped to [min_score, max_score]
    """
    cfg = CONSENSUS_SCORING
    total_votes = upvotes + downvotes
    if total_votes == 0:
        vote_ratio = _d(cfg["neutral_vote_ratio"])  # type: ignore[arg-type]
    else:
        vote_ratio = Decimal(upvotes) / Decimal(total_votes)
    vote_component = vote_ratio * _d(cfg["vote_weight"])  # type: ignore[arg-type]

    cap = int(cfg["verification_cap"])  # type: ignore[arg-type]
    capped = min(max(verification_count, 0), cap)
    verify_component = Decimal(capped) / Decimal(cap) * _d(cfg["verification_weight"])  # type: ignore[arg-type]

    ai_score = ai_validation_score if ai_validation_score is not None else cfg["ai_neutral_score"]
    ai_component = _d(ai_score) / Decimal(100) * _d(cfg["ai_weight"])  # type: ignore[arg-type]

    confirm_bonus = _d(cfg["confirmation_bonus"]) if confirmed else Decimal(0)  # type: ignore[arg-type]

    raw = vote_component + verify_component + ai_component + confirm_bonus
    score = int(raw.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    return max(int(cfg["min_score"]), min(score, int(cfg["max_score"])))  # type: ignore[arg-type]


def score_report(report) -> int:
    """Convenience wrapper reading signals off a Report row."""
    return compute_consensus_score(
        upvotes=report.upvotes or 0,
        downvotes=report.downvotes or 0,
        verification_count=report.verification_count or 0,
        ai_validation_score=report.ai_validation_score,
        confirmed=report.confirmed_by is not None,
    )


def trust_tier(score: int) -> str:
    """Return the display tier for a consensus score.
    Possible tiers: Highly Trusted, Trusted, Moderate, Low Trust, Unverified.
    """
    tiers = CONSENSUS_SCORING.get("tiers", {})  # type: ignore[assignment]
    for label, lower_bound in sorted(tiers.items(), key=lambda kv: kv[1], reverse=True):  # type: ignore[union-attr]
        if score >= lower_bound:
            return label
    return "Unverified"


__all__ = ["compute_consensus_score", "score_report", "trust_tier"]
