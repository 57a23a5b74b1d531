import re
from functools import lru_cache
from typing import Optional
from urllib.parse import urlparse

from maildetective.config import settings
from maildetective.core.classifier import MAX_SCORE, finalize
from maildetective.core.rules import (
    DetectionLists, RuleSet, URLContext, build_url_rules, load_detection_lists, tld_of
)
from maildetective.schemas import AnalysisResult, Issue, Severity

# Characters a hostname can never carry once userinfo and port are stripped
INVALID_HOST_CHARS = re.compile(r'[\s<>"{}|\\^`%#?/@]')

INVALID_URL_ISSUE = Issue(
    type='Invalid URL',
    message='URL format is invalid or malformed',
    severity=Severity.HIGH
)
INVALID_URL_PENALTY = 50

CLEAN_RECOMMENDATIONS = (
    "URL appears safe, but always verify the site's legitimacy before entering sensitive data",
)

CAUTION_RECOMMENDATIONS = (
    'Always verify the website URL matches the official domain',
    'Look for HTTPS encryption on sites requiring sensitive information',
    'When in doubt, navigate to the site directly instead of clicking links',
)


def parse_url(raw: str) -> Optional[URLContext]:
    """
    Split a raw URL into scheme, host and path

    Bare hosts are read as plain http. Returns None when the input cannot
    be decomposed.
    """
    candidate = raw.strip()
    if not candidate.lower().startswith('http'):
        candidate = f'http://{candidate}'

    try:
        parsed = urlparse(candidate)
        host = parsed.hostname
        parsed.port  # out-of-range or non-numeric ports raise here
    except ValueError:
        return None

    if not parsed.scheme or not host or INVALID_HOST_CHARS.search(host):
        return None

    return URLContext(
        raw=raw,
        scheme=parsed.scheme.lower(),
        host=host.lower(),
        path=parsed.path or '/',
        tld=tld_of(host.lower())
    )


class URLAnalyzer:
    def __init__(self, lists: DetectionLists, rules: Optional[RuleSet] = None):
        self.lists = lists
        self.rules = rules or build_url_rules(lists)

    def analyze(self, raw: str) -> AnalysisResult:
        score = MAX_SCORE
        issues = []
        recommendations = []

        context = parse_url(raw)
        if context is None:
            issues.append(INVALID_URL_ISSUE)
            score -= INVALID_URL_PENALTY
        else:
            for hit in self.rules.evaluate(context):
                issues.append(hit.issue)
                score -= hit.penalty
                if hit.recommendation:
                    recommendations.append(hit.recommendation)

        recommendations.extend(CAUTION_RECOMMENDATIONS if issues else CLEAN_RECOMMENDATIONS)
        return finalize(score, issues, recommendations)


@lru_cache(maxsize=1)
def default_url_analyzer() -> URLAnalyzer:
    return URLAnalyzer(load_detection_lists(settings.DETECTION_LISTS_PATH))


def analyze_url(raw: str) -> AnalysisResult:
    return default_url_analyzer().analyze(raw)
