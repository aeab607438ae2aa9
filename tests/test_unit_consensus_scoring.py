from report_trust.services.consensus_scoring import compute_consensus_score, trust_tier


def test_new_report_scores_thirty():
    # neutral votes 20 + no verifications 0 + neutral classifier 10
    assert compute_consensus_score(0, 0, 0, None, False) == 30


def test_half_point_rounds_up():
    # 40 (all upvotes) + 7.5 (3/10 verifications) + 18 (classifier 90) + 15 (confirmed) = 80.5
    assert compute_consensus_score(1, 0, 3, 90, True) == 81


def test_components_and_caps():
    # verification component is capped at 10 verifications
    assert compute_consensus_score(0, 0, 10, None, False) == compute_consensus_score(0, 0, 50, None, False)
    assert compute_consensus_score(10, 0, 10, 100, True) == 100
    assert compute_consensus_score(0, 10, 0, 0, False) == 0


def test_vote_ratio_uses_both_counters():
    # 3 up / 1 down -> 0.75 * 40 = 30; + 0 + 10
    assert compute_consensus_score(3, 1, 0, None, False) == 40


def test_confirmation_adds_fifteen():
    base = compute_consensus_score(2, 1, 4, 70, False)
    assert compute_consensus_score(2, 1, 4, 70, True) == base + 15


def test_trust_tiers():
    assert trust_tier(95) == "Highly Trusted"
    assert trust_tier(80) == "Highly Trusted"
    assert trust_tier(79) == "Trusted"
    assert trust_tier(45) == "Moderate"
    assert trust_tier(30) == "Low Trust"
    assert trust_tier(5) == "Unverified"
