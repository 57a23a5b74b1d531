import time
import logging
import threading
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from maildetective.config import Settings, settings as default_settings
from maildetective.core.aggregator import Aggregator
from maildetective.core.email_analyzer import EmailAnalyzer
from maildetective.core.rules import DetectionLists, load_detection_lists
from maildetective.core.threat_intel import (
    HunterClient, LocalDisposableClient, PhishTankClient, SourceClient,
    URLVoidClient, VirusTotalClient, email_sources, url_sources
)
from maildetective.core.url_analyzer import URLAnalyzer
from maildetective.schemas import AnalysisKind, AnalysisResult, HistoryRecord, SourceStatus

logger = logging.getLogger(__name__)

HistorySink = Callable[[HistoryRecord], None]


class AnalysisService:
    """
    Runs heuristics, then the configured reputation sources, for one input

    Source clients are built per call so concurrent requests never share an
    HTTP session.
    """

    def __init__(self, config: Optional[Settings] = None,
                 lists: Optional[DetectionLists] = None,
                 aggregator: Optional[Aggregator] = None,
                 history_sink: Optional[HistorySink] = None,
                 offline: bool = False):
        self.config = config or default_settings
        self.lists = lists or load_detection_lists(self.config.DETECTION_LISTS_PATH)
        self.email_analyzer = EmailAnalyzer(self.lists)
        self.url_analyzer = URLAnalyzer(self.lists)
        self.aggregator = aggregator or Aggregator(
            max_workers=self.config.MAX_SOURCE_WORKERS,
            timeout=self.config.AGGREGATE_TIMEOUT_SECONDS
        )
        self.history_sink = history_sink
        self.offline = offline

    def analyze_email(self, email: str, cancel_event: Optional[threading.Event] = None,
                      user_id: Optional[str] = None) -> AnalysisResult:
        """Complete email analysis pipeline"""
        return self._run(AnalysisKind.EMAIL, email, cancel_event, user_id)

    def analyze_url(self, url: str, cancel_event: Optional[threading.Event] = None,
                    user_id: Optional[str] = None) -> AnalysisResult:
        """Complete URL analysis pipeline"""
        return self._run(AnalysisKind.URL, url, cancel_event, user_id)

    def source_status(self) -> List[SourceStatus]:
        credentials = self.config.credentials()
        statuses = []
        for client_cls in (VirusTotalClient, URLVoidClient, PhishTankClient, HunterClient):
            statuses.append(SourceStatus(
                name=client_cls.name,
                kind=client_cls.kind,
                configured=bool(credentials.get(client_cls.name)),
                requires_credential=True
            ))
        statuses.append(SourceStatus(
            name=LocalDisposableClient.name,
            kind=LocalDisposableClient.kind,
            configured=not credentials.get(HunterClient.name),
            requires_credential=False
        ))
        return statuses

    def _run(self, kind: AnalysisKind, value: str, cancel_event: Optional[threading.Event],
             user_id: Optional[str]) -> AnalysisResult:
        start_time = time.time()

        analyzer = self.email_analyzer if kind == AnalysisKind.EMAIL else self.url_analyzer
        base = analyzer.analyze(value)

        credentials: Dict[str, Optional[str]] = {} if self.offline else self.config.credentials()
        # The aggregator closes each client once no worker can still hold it
        clients = self._sources(kind, credentials)
        result = self.aggregator.aggregate(base, clients, value, credentials, kind, cancel_event)

        processing_time = time.time() - start_time
        logger.info(
            f"✓ {kind.value} analysis complete in {processing_time:.2f}s - "
            f"tier: {result.risk_tier.value}, score: {result.score}"
        )

        self._record(kind, value, result, user_id)
        return result

    def _sources(self, kind: AnalysisKind, credentials: Dict[str, Optional[str]]) -> List[SourceClient]:
        if self.offline:
            return []
        timeout = self.config.SOURCE_TIMEOUT_SECONDS
        if kind == AnalysisKind.EMAIL:
            return email_sources(credentials, self.lists, timeout)
        return url_sources(timeout)

    def _record(self, kind: AnalysisKind, value: str, result: AnalysisResult, user_id: Optional[str]):
        if self.history_sink is None:
            return
        record = HistoryRecord(
            type=kind,
            input=value,
            result=result,
            timestamp=datetime.now(timezone.utc),
            user_id=user_id
        )
        try:
            self.history_sink(record)
        except Exception as e:
            # The sink is outside the engine; its failure never changes the verdict
            logger.error(f"❌ Error saving analysis: {e}")
