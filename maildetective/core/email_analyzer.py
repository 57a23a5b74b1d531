"""
Heuristic email address analyzer.

Runs the email RuleSet against a raw address and returns a classified
AnalysisResult. No I/O and no exceptions: a malformed address simply
produces issues.
"""

from functools import lru_cache
from typing import Optional

from maildetective.config import settings
from maildetective.core.classifier import MAX_SCORE, finalize
from maildetective.core.rules import (
    DetectionLists, EmailContext, RuleSet, build_email_rules, load_detection_lists
)
from maildetective.schemas import AnalysisResult

CLEAN_RECOMMENDATIONS = (
    'Email format appears valid, but always verify sender identity through other means.',
)

CAUTION_RECOMMENDATIONS = (
    'Always verify the sender through alternative communication methods.',
    'Look for spelling errors or urgent language in the email content.',
    'Never provide sensitive information unless you can verify the sender.',
)


class EmailAnalyzer:
    def __init__(self, lists: DetectionLists, rules: Optional[RuleSet] = None):
        self.lists = lists
        self.rules = rules or build_email_rules(lists)

    def analyze(self, raw: str) -> AnalysisResult:
        context = EmailContext.from_raw(raw)

        score = MAX_SCORE
        issues = []
        recommendations = []
        for hit in self.rules.evaluate(context):
            issues.append(hit.issue)
            score -= hit.penalty
            if hit.recommendation:
                recommendations.append(hit.recommendation)

        recommendations.extend(CAUTION_RECOMMENDATIONS if issues else CLEAN_RECOMMENDATIONS)
        return finalize(score, issues, recommendations)


@lru_cache(maxsize=1)
def default_email_analyzer() -> EmailAnalyzer:
    return EmailAnalyzer(load_detection_lists(settings.DETECTION_LISTS_PATH))


def analyze_email(raw: str) -> AnalysisResult:
    return default_email_analyzer().analyze(raw)
