import re
import json
import logging
from dataclasses import dataclass, asdict
from functools import lru_cache
from pathlib import Path
from typing import Any, Callable, Iterator, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from maildetective.schemas import AnalysisKind, Issue, Severity

logger = logging.getLogger(__name__)

PACKAGED_LISTS_PATH = Path(__file__).resolve().parents[1] / 'data' / 'detection_lists.json'

# ===== SHAPE PATTERNS =====
EMAIL_SHAPE = re.compile(r'[^\s@]+@[^\s@]+\.[^\s@]+')
CONSECUTIVE_DOTS = re.compile(r'\.{2,}')
DIGIT = re.compile(r'[0-9]')
IPV4_LITERAL = re.compile(r'(?:[0-9]{1,3}\.){3}[0-9]{1,3}')

MAX_EMAIL_LENGTH = 50
MAX_URL_LENGTH = 100
MAX_HOST_LABELS = 4


class DetectionLists(BaseModel):
    """Curated lookalike / TLD / shortener data, versioned and read-only"""
    model_config = ConfigDict(frozen=True)

    version: str
    fake_email_domains: Tuple[str, ...] = ()
    phishing_domains: Tuple[str, ...] = ()
    email_suspicious_tlds: Tuple[str, ...] = ()
    url_suspicious_tlds: Tuple[str, ...] = ()
    typosquat_tlds: Tuple[str, ...] = ()
    url_shorteners: Tuple[str, ...] = ()
    security_keywords: Tuple[str, ...] = ()
    suspicious_paths: Tuple[str, ...] = ()
    plaintext_schemes: Tuple[str, ...] = ('http',)
    local_hosts: Tuple[str, ...] = ('localhost',)
    confusable_chars: Tuple[str, ...] = ('i', 'l', '1')
    email_confusable_min_distinct: int = 2
    url_confusable_min_distinct: int = 1
    disposable_domains: Tuple[str, ...] = ()
    disposable_patterns: Tuple[str, ...] = ()
    mailbox_providers: Tuple[str, ...] = ()

    @field_validator(
        'fake_email_domains', 'phishing_domains', 'email_suspicious_tlds',
        'url_suspicious_tlds', 'typosquat_tlds', 'url_shorteners',
        'security_keywords', 'suspicious_paths', 'plaintext_schemes',
        'local_hosts', 'disposable_domains', 'mailbox_providers'
    )
    @classmethod
    def _lowercase(cls, values):
        return tuple(v.strip().lower() for v in values if v and v.strip())


@lru_cache(maxsize=None)
def load_detection_lists(path: Optional[str] = None) -> DetectionLists:
    """
    Load curated detection lists once per process

    Args:
        path: Optional override file; the packaged JSON is the fallback

    Returns:
        Validated, immutable DetectionLists
    """
    candidates = [Path(path)] if path else []
    candidates.append(PACKAGED_LISTS_PATH)

    for file_path in candidates:
        if not file_path.exists():
            logger.warning(f"⚠️ Detection lists not found at: {file_path}")
            continue
        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                lists = DetectionLists.model_validate(json.load(f))
            logger.info(f"✓ Loaded detection lists v{lists.version} from: {file_path}")
            return lists
        except json.JSONDecodeError as e:
            logger.error(f"❌ JSON decode error in detection lists {file_path}: {e}")
        except ValidationError as e:
            logger.error(f"❌ Invalid detection lists {file_path}: {e}")

    raise FileNotFoundError(f"No usable detection lists (tried {[str(c) for c in candidates]})")


# ===== EVALUATION CONTEXTS =====

@dataclass(frozen=True)
class EmailContext:
    raw: str
    domain: str
    tld: str

    @classmethod
    def from_raw(cls, raw: str) -> 'EmailContext':
        parts = raw.split('@')
        domain = parts[1].lower() if len(parts) > 1 else ''
        return cls(raw=raw, domain=domain, tld=tld_of(domain))


@dataclass(frozen=True)
class URLContext:
    raw: str
    scheme: str
    host: str
    path: str
    tld: str


def tld_of(name: str) -> str:
    """Everything from the last dot, or '' when there is none"""
    dot = name.rfind('.')
    return name[dot:] if dot >= 0 else ''


def has_confusables(text: str, chars: Tuple[str, ...], min_distinct: int) -> bool:
    # Distinct lookalikes present, against a per-kind threshold
    return len({c for c in chars if c in text}) >= min_distinct


# ===== RULE MODEL =====

@dataclass(frozen=True)
class RuleHit:
    issue: Issue
    penalty: int
    recommendation: Optional[str] = None


@dataclass(frozen=True)
class RuleDefinition:
    issue_type: str
    message: str
    severity: Severity
    penalty: int
    predicate: Callable[[Any], bool]
    recommendation: Optional[str] = None

    def evaluate(self, context) -> Optional[RuleHit]:
        if not self.predicate(context):
            return None
        fields = asdict(context)
        return RuleHit(
            issue=Issue(
                type=self.issue_type,
                message=self.message.format(**fields),
                severity=self.severity
            ),
            penalty=self.penalty,
            recommendation=self.recommendation.format(**fields) if self.recommendation else None
        )


class RuleSet:
    """Fixed, ordered heuristics for one input kind"""

    def __init__(self, kind: AnalysisKind, rules: List[RuleDefinition], version: str):
        self.kind = kind
        self.rules = tuple(rules)
        self.version = version

    def __iter__(self) -> Iterator[RuleDefinition]:
        return iter(self.rules)

    def __len__(self) -> int:
        return len(self.rules)

    def evaluate(self, context) -> List[RuleHit]:
        hits = []
        for rule in self.rules:
            hit = rule.evaluate(context)
            if hit is not None:
                hits.append(hit)
        return hits


# ===== RULE SETS =====

def build_email_rules(lists: DetectionLists) -> RuleSet:
    fake_domains = frozenset(lists.fake_email_domains)
    bad_tlds = frozenset(lists.email_suspicious_tlds)
    typosquat_tlds = frozenset(lists.typosquat_tlds)

    return RuleSet(AnalysisKind.EMAIL, [
        RuleDefinition(
            'Invalid Format', 'Email address format is invalid',
            Severity.HIGH, 40,
            lambda c: EMAIL_SHAPE.fullmatch(c.raw) is None,
            recommendation='Verify the email address format is correct'
        ),
        RuleDefinition(
            'Suspicious Pattern', 'Contains numbers which may indicate typosquatting',
            Severity.MEDIUM, 20,
            lambda c: DIGIT.search(c.raw) is not None
        ),
        RuleDefinition(
            'Suspicious Pattern', 'Contains characters that can be easily confused (i, l, 1)',
            Severity.LOW, 10,
            lambda c: has_confusables(c.raw, lists.confusable_chars, lists.email_confusable_min_distinct)
        ),
        RuleDefinition(
            'Suspicious Pattern', 'Contains hyphens which are sometimes used in phishing emails',
            Severity.LOW, 10,
            lambda c: '-' in c.raw
        ),
        RuleDefinition(
            'Suspicious Pattern', 'Uses {tld} TLD instead of common .com (potential typosquatting)',
            Severity.MEDIUM, 20,
            lambda c: c.tld in typosquat_tlds
        ),
        RuleDefinition(
            'Fake Domain', 'Domain "{domain}" appears to be impersonating a legitimate service',
            Severity.HIGH, 50,
            lambda c: c.domain in fake_domains,
            recommendation='This domain is likely impersonating a legitimate service. '
                           'Do not trust emails from this address.'
        ),
        RuleDefinition(
            'Suspicious TLD', 'Top-level domain "{tld}" is commonly used for malicious purposes',
            Severity.HIGH, 35,
            lambda c: c.tld in bad_tlds,
            recommendation='Be extremely cautious with emails from this domain extension.'
        ),
        RuleDefinition(
            'Unusual Length', 'Email address is unusually long, which may indicate obfuscation',
            Severity.MEDIUM, 15,
            lambda c: len(c.raw) > MAX_EMAIL_LENGTH
        ),
        RuleDefinition(
            'Invalid Characters', 'Contains multiple consecutive dots',
            Severity.HIGH, 30,
            lambda c: CONSECUTIVE_DOTS.search(c.raw) is not None
        ),
    ], version=lists.version)


def build_url_rules(lists: DetectionLists) -> RuleSet:
    bad_tlds = frozenset(lists.url_suspicious_tlds)

    def is_local(host: str) -> bool:
        return any(local in host for local in lists.local_hosts)

    def is_shortener(host: str) -> bool:
        return any(s in host for s in lists.url_shorteners)

    return RuleSet(AnalysisKind.URL, [
        RuleDefinition(
            'Insecure Protocol', 'Uses HTTP instead of HTTPS, data may not be encrypted',
            Severity.MEDIUM, 25,
            lambda c: c.scheme in lists.plaintext_schemes and not is_local(c.host),
            recommendation='Avoid entering sensitive information on non-HTTPS sites'
        ),
        RuleDefinition(
            'Phishing Domain', 'Domain appears to impersonate a legitimate service',
            Severity.HIGH, 60,
            lambda c: any(d in c.host for d in lists.phishing_domains),
            recommendation='This appears to be a fake website impersonating a legitimate service'
        ),
        RuleDefinition(
            'Suspicious TLD', 'Domain uses "{tld}" which is commonly associated with malicious sites',
            Severity.HIGH, 40,
            lambda c: c.tld in bad_tlds,
            recommendation='Be extremely cautious with this domain extension'
        ),
        RuleDefinition(
            'URL Shortener', 'URL is shortened, hiding the actual destination',
            Severity.MEDIUM, 30,
            lambda c: is_shortener(c.host),
            recommendation='URL shorteners can hide malicious destinations. Expand the URL first'
        ),
        RuleDefinition(
            'Suspicious Pattern', 'Domain contains numbers (possible typosquatting)',
            Severity.MEDIUM, 20,
            lambda c: DIGIT.search(c.host) is not None
        ),
        RuleDefinition(
            'Suspicious Pattern', 'Contains security-related keywords often used in phishing',
            Severity.HIGH, 35,
            lambda c: any(k in c.host.lower() for k in lists.security_keywords)
        ),
        RuleDefinition(
            'Suspicious Pattern', 'Contains easily confused characters (i, l, 1)',
            Severity.LOW, 10,
            lambda c: has_confusables(c.host, lists.confusable_chars, lists.url_confusable_min_distinct)
        ),
        RuleDefinition(
            'Suspicious Path', 'URL path contains keywords commonly used in phishing attacks',
            Severity.MEDIUM, 25,
            lambda c: any(p in c.path.lower() for p in lists.suspicious_paths)
        ),
        RuleDefinition(
            'Unusually Long URL', 'Extremely long URL may be attempting to hide malicious content',
            Severity.MEDIUM, 20,
            lambda c: len(c.raw) > MAX_URL_LENGTH
        ),
        RuleDefinition(
            'Multiple Subdomains', 'Excessive subdomains may indicate attempt to confuse users',
            Severity.LOW, 15,
            lambda c: len(c.host.split('.')) > MAX_HOST_LABELS
        ),
        RuleDefinition(
            'IP Address', 'URL uses IP address instead of domain name',
            Severity.HIGH, 45,
            lambda c: IPV4_LITERAL.fullmatch(c.host) is not None,
            recommendation='Legitimate websites rarely use IP addresses directly'
        ),
    ], version=lists.version)
