from typing import Iterable, List, NamedTuple

from maildetective.schemas import AnalysisResult, Issue, RiskTier, Severity

# Verdict thresholds
SAFE_THRESHOLD = 70
HIGH_RISK_THRESHOLD = 40
MIN_SCORE = 0
MAX_SCORE = 100


class Classification(NamedTuple):
    score: int
    risk_tier: RiskTier
    is_safe: bool


def clamp_score(score: int) -> int:
    return max(MIN_SCORE, min(MAX_SCORE, int(score)))


def classify(score: int, issues: Iterable[Issue]) -> Classification:
    """
    Map a running score and its issues to a risk tier.

    This is the only place tier and safety are decided; analyzers and the
    aggregator both finish through here.

    Args:
        score: Running score, may be outside [0, 100] after penalties
        issues: Every issue collected so far

    Returns:
        Classification with the clamped score
    """
    score = clamp_score(score)
    high_count = sum(1 for issue in issues if issue.severity == Severity.HIGH)

    if score < HIGH_RISK_THRESHOLD or high_count > 0:
        tier = RiskTier.HIGH
    elif score < SAFE_THRESHOLD:
        tier = RiskTier.MEDIUM
    else:
        tier = RiskTier.LOW

    return Classification(
        score=score,
        risk_tier=tier,
        is_safe=score >= SAFE_THRESHOLD and high_count == 0
    )


def finalize(raw_score: int, issues: List[Issue], recommendations: List[str]) -> AnalysisResult:
    """Build an AnalysisResult whose tier and safety come from classify()"""
    verdict = classify(raw_score, issues)
    return AnalysisResult(
        is_safe=verdict.is_safe,
        risk_tier=verdict.risk_tier,
        score=verdict.score,
        issues=list(issues),
        recommendations=list(recommendations)
    )
