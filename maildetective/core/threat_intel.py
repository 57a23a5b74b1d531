import re
import base64
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional
from urllib.parse import urlparse

import requests
from bs4 import BeautifulSoup

from maildetective.config import settings
from maildetective.core.rules import DetectionLists, EmailContext
from maildetective.schemas import AnalysisKind, EngineResult, EngineVerdict, SourceVerdict

logger = logging.getLogger(__name__)

USER_AGENT = 'MailDetective/1.0'

VIRUSTOTAL_URL_ENDPOINT = 'https://www.virustotal.com/api/v3/urls/{}'
URLVOID_ENDPOINT = 'https://api.urlvoid.com/v1/pay-as-you-go/'
PHISHTANK_ENDPOINT = 'https://checkurl.phishtank.com/checkurl/'
HUNTER_ENDPOINT = 'https://api.hunter.io/v2/email-verifier'

VIRUSTOTAL_CATEGORIES = {
    'malicious': EngineVerdict.MALICIOUS,
    'suspicious': EngineVerdict.SUSPICIOUS,
}


class SourceError(Exception):
    """A reputation source produced no usable answer"""

    def __init__(self, source: str, reason: str):
        super().__init__(f"{source}: {reason}")
        self.source = source
        self.reason = reason


@dataclass(frozen=True)
class SourceOutcome:
    """Either a verdict or the error explaining its absence, never both"""
    source_name: str
    verdict: Optional[SourceVerdict] = None
    error: Optional[SourceError] = None

    @property
    def ok(self) -> bool:
        return self.verdict is not None


def detection_reputation(detections: int, engines: int) -> int:
    """
    100 minus the detection percentage, rounded half-up in integers

    Args:
        detections: Engines that flagged the target
        engines: Engines that looked at it (0 is treated as 1)

    Returns:
        Reputation in [0, 100]
    """
    engines = max(int(engines), 1)
    detections = max(0, min(int(detections), engines))
    percent = (detections * 200 + engines) // (2 * engines)
    return max(0, 100 - percent)


class SourceClient:
    """
    One reputation provider.

    Subclasses implement _lookup() and may raise anything from it; query()
    is the boundary that turns every failure into a SourceOutcome error.
    """
    name = 'source'
    kind = AnalysisKind.URL
    requires_credential = True

    def query(self, value: str, credential: Optional[str] = None) -> SourceOutcome:
        if self.requires_credential and not credential:
            return self._absent('missing credential')

        try:
            verdict = self._lookup(value, credential)
        except SourceError as e:
            logger.warning(f"⚠️ {self.name} unavailable: {e.reason}")
            return SourceOutcome(self.name, error=e)
        except requests.Timeout:
            logger.warning(f"⚠️ {self.name} request timeout")
            return self._absent('timeout')
        except ValueError as e:
            logger.error(f"❌ {self.name} returned a malformed payload: {e}")
            return self._absent(f'malformed payload: {e}')
        except requests.RequestException as e:
            logger.error(f"❌ {self.name} request error: {e}")
            return self._absent(f'request error: {e}')
        except (KeyError, TypeError, AttributeError) as e:
            logger.error(f"❌ Unexpected {self.name} response shape: {e}")
            return self._absent(f'unexpected response shape: {e}')

        logger.info(f"✓ {self.name}: malicious={verdict.is_malicious} reputation={verdict.reputation}")
        return SourceOutcome(self.name, verdict=verdict)

    def close(self):
        pass

    def _lookup(self, value: str, credential: Optional[str]) -> SourceVerdict:
        raise NotImplementedError

    def _absent(self, reason: str) -> SourceOutcome:
        return SourceOutcome(self.name, error=SourceError(self.name, reason))


class HTTPSourceClient(SourceClient):
    """Provider reached over HTTP with a private session and a bounded timeout"""

    def __init__(self, timeout: Optional[float] = None, session: Optional[requests.Session] = None):
        self.timeout = timeout if timeout is not None else settings.SOURCE_TIMEOUT_SECONDS
        self.http_session = session or requests.Session()
        self.http_session.headers.update({'User-Agent': USER_AGENT})

    def close(self):
        self.http_session.close()

    def _check_status(self, response: requests.Response):
        if response.status_code == 200:
            return
        if response.status_code in (401, 403):
            raise SourceError(self.name, 'authentication failed (invalid API key)')
        if response.status_code == 404:
            raise SourceError(self.name, 'no report available')
        if response.status_code == 429:
            raise SourceError(self.name, 'rate limit exceeded')
        raise SourceError(self.name, f'returned status code {response.status_code}')

    def _json(self, response: requests.Response) -> Dict:
        self._check_status(response)
        payload = response.json()
        if not isinstance(payload, dict):
            raise ValueError(f'expected a JSON object, got {type(payload).__name__}')
        return payload


# ===== URL SOURCES =====

class VirusTotalClient(HTTPSourceClient):
    """Existing VirusTotal URL report (no scan submission)"""
    name = 'virustotal'
    kind = AnalysisKind.URL

    def _lookup(self, url: str, api_key: Optional[str]) -> SourceVerdict:
        url_id = base64.urlsafe_b64encode(url.encode()).decode().strip("=")
        response = self.http_session.get(
            VIRUSTOTAL_URL_ENDPOINT.format(url_id),
            headers={'x-apikey': api_key},
            timeout=self.timeout
        )
        attributes = self._json(response).get('data', {}).get('attributes', {})

        stats = attributes.get('last_analysis_stats')
        if not isinstance(stats, dict):
            raise SourceError(self.name, 'report has no analysis stats')

        malicious = int(stats.get('malicious', 0))
        engines = sum(int(count) for count in stats.values())

        detail = [
            EngineResult(
                engine=engine,
                verdict=VIRUSTOTAL_CATEGORIES.get(result.get('category'), EngineVerdict.CLEAN)
            )
            for engine, result in (attributes.get('last_analysis_results') or {}).items()
        ]

        return SourceVerdict(
            source_name=self.name,
            is_malicious=malicious > 0,
            reputation=detection_reputation(malicious, engines),
            detail=detail,
            categories=sorted(set((attributes.get('categories') or {}).values()))
        )


class URLVoidClient(HTTPSourceClient):
    """URLVoid host reputation; the report is XML"""
    name = 'urlvoid'
    kind = AnalysisKind.URL

    def _lookup(self, url: str, api_key: Optional[str]) -> SourceVerdict:
        host = urlparse(url if '://' in url else f'http://{url}').hostname
        if not host:
            raise SourceError(self.name, 'no host to look up')

        response = self.http_session.get(
            URLVOID_ENDPOINT,
            params={'key': api_key, 'host': host},
            timeout=self.timeout
        )
        self._check_status(response)

        soup = BeautifulSoup(response.text, 'html.parser')
        if soup.find() is None:
            raise ValueError('response is not an XML report')
        error = soup.find('error')
        if error is not None:
            raise SourceError(self.name, error.get_text(strip=True) or 'provider error')

        detections = len(soup.find_all('detection'))
        engines = len(soup.find_all('engine'))

        # URLVoid does not give per-engine verdicts; detail stays empty
        return SourceVerdict(
            source_name=self.name,
            is_malicious=detections > 0,
            reputation=detection_reputation(detections, engines),
            categories=['malicious'] if detections > 0 else []
        )


class PhishTankClient(HTTPSourceClient):
    name = 'phishtank'
    kind = AnalysisKind.URL

    def _lookup(self, url: str, app_key: Optional[str]) -> SourceVerdict:
        response = self.http_session.post(
            PHISHTANK_ENDPOINT,
            data={'url': url, 'format': 'json', 'app_key': app_key},
            timeout=self.timeout
        )
        results = self._json(response).get('results')
        if not isinstance(results, dict):
            raise SourceError(self.name, 'response has no results')

        flagged = _truthy(results.get('in_database')) and _truthy(results.get('verified'))
        return SourceVerdict(
            source_name=self.name,
            is_malicious=flagged,
            reputation=0 if flagged else 100,
            categories=['phishing'] if flagged else []
        )


# ===== EMAIL SOURCES =====

class HunterClient(HTTPSourceClient):
    """Hunter.io deliverability / disposable-domain check"""
    name = 'hunter'
    kind = AnalysisKind.EMAIL

    def _lookup(self, email: str, api_key: Optional[str]) -> SourceVerdict:
        response = self.http_session.get(
            HUNTER_ENDPOINT,
            params={'email': email, 'api_key': api_key},
            timeout=self.timeout
        )
        data = self._json(response).get('data')
        if not isinstance(data, dict):
            raise SourceError(self.name, 'response has no data')

        result = data.get('result') or data.get('status')
        disposable = _truthy(data.get('disposable'))
        undeliverable = result == 'undeliverable'

        score = data.get('score')
        reputation = 50 if score is None else max(0, min(100, int(score)))

        categories = []
        if disposable:
            categories.append('disposable')
        if undeliverable:
            categories.append('undeliverable')
        if _truthy(data.get('webmail')):
            categories.append('webmail')

        return SourceVerdict(
            source_name=self.name,
            is_malicious=disposable or undeliverable,
            reputation=reputation,
            categories=categories
        )


class LocalDisposableClient(SourceClient):
    """Static disposable-domain check; fallback when no email provider is configured"""
    name = 'local'
    kind = AnalysisKind.EMAIL
    requires_credential = False

    def __init__(self, lists: DetectionLists):
        self.disposable_domains = frozenset(lists.disposable_domains)
        self.disposable_patterns = [re.compile(p, re.IGNORECASE) for p in lists.disposable_patterns]
        self.mailbox_providers = frozenset(lists.mailbox_providers)

    def _lookup(self, email: str, credential: Optional[str]) -> SourceVerdict:
        domain = EmailContext.from_raw(email).domain
        if not domain:
            raise SourceError(self.name, 'no domain to look up')

        disposable = (
            domain in self.disposable_domains
            or any(p.search(domain) for p in self.disposable_patterns)
        )
        if disposable:
            reputation = 20
        elif domain in self.mailbox_providers:
            reputation = 90
        else:
            reputation = 60

        return SourceVerdict(
            source_name=self.name,
            is_malicious=disposable,
            reputation=reputation,
            categories=['disposable'] if disposable else []
        )


def _truthy(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ('true', '1', 'yes')
    return bool(value)


def url_sources(timeout: Optional[float] = None) -> List[SourceClient]:
    return [VirusTotalClient(timeout), URLVoidClient(timeout), PhishTankClient(timeout)]


def email_sources(credentials: Dict[str, Optional[str]], lists: DetectionLists,
                  timeout: Optional[float] = None) -> List[SourceClient]:
    """Credentialed providers first; the local check only when none is configured"""
    if credentials.get(HunterClient.name):
        return [HunterClient(timeout)]
    return [LocalDisposableClient(lists)]
