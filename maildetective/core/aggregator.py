"""
Aggregator - merges reputation source verdicts into a heuristic result

Fans out to every configured SourceClient on a thread pool, waits for all
of them to settle (bounded by an overall deadline or an external cancel
signal), then merges the verdicts in dispatch order on the calling thread
and reclassifies once.
"""

import time
import logging
import threading
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from maildetective.config import settings
from maildetective.core.classifier import finalize
from maildetective.core.threat_intel import SourceClient, SourceOutcome
from maildetective.schemas import AnalysisKind, AnalysisResult, Issue, Severity, SourceVerdict

logger = logging.getLogger(__name__)

POOR_REPUTATION_THRESHOLD = 50
ENHANCED_DETECTION_UNAVAILABLE = 'Configure API keys for enhanced threat detection'


@dataclass(frozen=True)
class MergePolicy:
    malicious_type: str
    malicious_penalty: int
    poor_reputation_penalty: int
    subject: str
    report_reputation: bool = False

    def malicious_message(self, verdict: SourceVerdict) -> str:
        if 'disposable' in verdict.categories:
            return 'Email uses a disposable/temporary email service'
        if 'undeliverable' in verdict.categories:
            return 'Email address is not deliverable'
        return f'{self.subject[:1].upper()}{self.subject[1:]} flagged as malicious by {verdict.source_name}'


MERGE_POLICIES = {
    AnalysisKind.URL: MergePolicy(
        malicious_type='Malicious URL Detected',
        malicious_penalty=60,
        poor_reputation_penalty=25,
        subject='URL'
    ),
    AnalysisKind.EMAIL: MergePolicy(
        malicious_type='Malicious Email Detected',
        malicious_penalty=40,
        poor_reputation_penalty=30,
        subject='email address',
        report_reputation=True
    ),
}


def _settle(client: SourceClient, value: str, credential: Optional[str]) -> SourceOutcome:
    try:
        return client.query(value, credential)
    finally:
        client.close()


class Aggregator:
    def __init__(self, max_workers: Optional[int] = None, timeout: Optional[float] = None,
                 poll_interval: float = 0.05):
        self.max_workers = max_workers or settings.MAX_SOURCE_WORKERS
        self.timeout = timeout if timeout is not None else settings.AGGREGATE_TIMEOUT_SECONDS
        self.poll_interval = poll_interval

    def aggregate(self, base: AnalysisResult, clients: Sequence[SourceClient], value: str,
                  credentials: Dict[str, Optional[str]], kind: AnalysisKind,
                  cancel_event: Optional[threading.Event] = None) -> AnalysisResult:
        """
        Merge every settled source verdict into the base result

        Args:
            base: Heuristic result from the analyzer; never modified
            clients: Candidate sources, in dispatch order
            value: The raw email address or URL
            credentials: Provider name -> secret; a missing secret means not dispatched
            kind: Which merge policy applies
            cancel_event: Set it to stop waiting; settled verdicts are still merged

        Returns:
            A new, reclassified AnalysisResult

        Every client is closed once nothing can still be using it: skipped and
        never-started clients right away, dispatched ones when their call returns.
        """
        dispatched = self._dispatchable(clients, credentials)
        verdicts = self._collect(dispatched, value, cancel_event) if dispatched else []
        return self.merge(base, verdicts, kind)

    def merge(self, base: AnalysisResult, verdicts: List[SourceVerdict],
              kind: AnalysisKind) -> AnalysisResult:
        if not verdicts:
            return base.model_copy(update={
                'recommendations': [*base.recommendations, ENHANCED_DETECTION_UNAVAILABLE]
            })

        policy = MERGE_POLICIES[kind]
        score = base.score
        issues = list(base.issues)
        recommendations = list(base.recommendations)

        for verdict in verdicts:
            if verdict.is_malicious:
                issues.append(Issue(
                    type=policy.malicious_type,
                    message=policy.malicious_message(verdict),
                    severity=Severity.HIGH
                ))
                score -= policy.malicious_penalty

            if verdict.reputation < POOR_REPUTATION_THRESHOLD:
                issues.append(Issue(
                    type='Poor Reputation',
                    message=f'Domain has poor reputation ({verdict.reputation}/100) '
                            f'according to {verdict.source_name}',
                    severity=Severity.MEDIUM
                ))
                score -= policy.poor_reputation_penalty

            flagged = verdict.malicious_engines()
            if flagged:
                recommendations.append(
                    f'{flagged}/{len(verdict.detail)} security engines flagged this {policy.subject} as malicious'
                )

            if policy.report_reputation:
                recommendations.append(f'Domain reputation score: {verdict.reputation}/100')

        # Penalties stack per source; only the final score is clamped
        return finalize(score, issues, recommendations)

    def _dispatchable(self, clients: Sequence[Optional[SourceClient]],
                      credentials: Dict[str, Optional[str]]) -> List[Tuple[SourceClient, Optional[str]]]:
        dispatched = []
        for client in clients:
            if client is None:
                continue
            credential = credentials.get(client.name)
            if client.requires_credential and not credential:
                logger.debug(f"{client.name} not configured; skipping")
                client.close()
                continue
            dispatched.append((client, credential))
        return dispatched

    def _collect(self, dispatched: List[Tuple[SourceClient, Optional[str]]], value: str,
                 cancel_event: Optional[threading.Event]) -> List[SourceVerdict]:
        executor = ThreadPoolExecutor(
            max_workers=min(self.max_workers, len(dispatched)),
            thread_name_prefix='source'
        )
        futures = [executor.submit(_settle, client, value, credential) for client, credential in dispatched]

        deadline = time.monotonic() + self.timeout
        pending = set(futures)
        try:
            while pending:
                if cancel_event is not None and cancel_event.is_set():
                    logger.warning(f"⚠️ Aggregation cancelled with {len(pending)} source(s) pending")
                    break
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    logger.warning(f"⚠️ Aggregation deadline reached with {len(pending)} source(s) pending")
                    break
                _, pending = wait(pending, timeout=min(remaining, self.poll_interval),
                                  return_when=FIRST_COMPLETED)
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        verdicts = []
        for (client, _), future in zip(dispatched, futures):
            if future.cancelled():
                # Never started, so no worker holds its session
                client.close()
                logger.warning(f"⚠️ {client.name} never started; no contribution")
                continue
            if not future.done():
                logger.warning(f"⚠️ {client.name} did not settle; no contribution")
                continue
            error = future.exception()
            if error is not None:
                logger.error(f"❌ {client.name} raised past its boundary: {error}")
                continue
            outcome = future.result()
            if outcome.ok:
                verdicts.append(outcome.verdict)
            else:
                logger.info(f"{client.name} contributed nothing: {outcome.error.reason}")
        return verdicts
