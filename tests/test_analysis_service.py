from unittest.mock import MagicMock

import pytest

from maildetective.config import Settings
from maildetective.core.aggregator import ENHANCED_DETECTION_UNAVAILABLE
from maildetective.schemas import AnalysisKind, RiskTier, SourceVerdict
from maildetective.services import analysis_service
from maildetective.services.analysis_service import AnalysisService


class TestAnalysisService:
    def test_email_uses_local_fallback_without_hunter_key(self, offline_settings, lists):
        service = AnalysisService(config=offline_settings, lists=lists)

        result = service.analyze_email('test@example.com')

        assert result.score == 100
        assert result.is_safe is True
        assert result.recommendations[-1] == 'Domain reputation score: 60/100'

    def test_disposable_email_is_penalised(self, offline_settings, lists):
        service = AnalysisService(config=offline_settings, lists=lists)

        result = service.analyze_email('someone@fakeinbox.com')

        assert [i.type for i in result.issues] == ['Malicious Email Detected', 'Poor Reputation']
        assert result.score == 30
        assert result.risk_tier == RiskTier.HIGH

    def test_url_without_keys_reports_unavailable(self, offline_settings, lists):
        service = AnalysisService(config=offline_settings, lists=lists)

        result = service.analyze_url('https://python.org')

        assert result.score == 100
        assert result.recommendations[-1] == ENHANCED_DETECTION_UNAVAILABLE

    def test_offline_skips_every_source(self, offline_settings, lists):
        service = AnalysisService(config=offline_settings, lists=lists, offline=True)

        result = service.analyze_email('someone@fakeinbox.com')

        assert result.issues == []
        assert result.recommendations[-1] == ENHANCED_DETECTION_UNAVAILABLE

    def test_configured_url_source_is_merged_and_closed(self, monkeypatch, lists, stub_client):
        config = Settings(_env_file=None, VIRUSTOTAL_API_KEY='vt-key', URLVOID_API_KEY=None,
                          PHISHTANK_APP_KEY=None, HUNTER_API_KEY=None)
        client = stub_client('virustotal', requires_credential=True,
                             verdict=SourceVerdict(source_name='virustotal', is_malicious=True, reputation=10))
        monkeypatch.setattr(analysis_service, 'url_sources', lambda timeout: [client])

        result = AnalysisService(config=config, lists=lists).analyze_url('https://python.org')

        assert client.calls == 1
        assert client.closed is True
        assert result.score == 15
        assert result.is_safe is False

    def test_history_sink_receives_record(self, offline_settings, lists):
        records = []
        service = AnalysisService(config=offline_settings, lists=lists, offline=True,
                                  history_sink=records.append)

        result = service.analyze_url('http://192.168.1.10/admin', user_id='user-1')

        assert len(records) == 1
        assert records[0].type == AnalysisKind.URL
        assert records[0].input == 'http://192.168.1.10/admin'
        assert records[0].result == result
        assert records[0].user_id == 'user-1'
        assert records[0].timestamp.tzinfo is not None

    def test_history_sink_failure_does_not_change_result(self, offline_settings, lists):
        sink = MagicMock(side_effect=RuntimeError('database down'))
        service = AnalysisService(config=offline_settings, lists=lists, offline=True, history_sink=sink)

        result = service.analyze_email('admin@gmai1.com')

        sink.assert_called_once()
        assert result.score == 20

    def test_source_status_never_exposes_keys(self, lists):
        config = Settings(_env_file=None, VIRUSTOTAL_API_KEY='secret', URLVOID_API_KEY=None,
                          PHISHTANK_APP_KEY=None, HUNTER_API_KEY='  ')
        statuses = {s.name: s for s in AnalysisService(config=config, lists=lists).source_status()}

        assert set(statuses) == {'virustotal', 'urlvoid', 'phishtank', 'hunter', 'local'}
        assert statuses['virustotal'].configured is True
        assert statuses['urlvoid'].configured is False
        assert statuses['hunter'].configured is False
        assert statuses['local'].configured is True
        assert statuses['local'].requires_credential is False
        assert 'secret' not in str([s.model_dump() for s in statuses.values()])


@pytest.mark.parametrize('value,expected', [(None, None), ('', None), ('  ', None), (' k ', 'k')])
def test_blank_credentials_are_unconfigured(value, expected):
    config = Settings(_env_file=None, VIRUSTOTAL_API_KEY=value)
    assert config.credentials()['virustotal'] == expected
