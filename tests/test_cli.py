import json

import pytest

from maildetective.cli import build_parser, main


def test_safe_email_exits_zero(capsys):
    assert main(['email', 'test@example.com', '--offline']) == 0

    payload = json.loads(capsys.readouterr().out)
    assert payload['isSafe'] is True
    assert payload['riskTier'] == 'low'


def test_risky_url_exits_one(capsys):
    assert main(['url', 'http://192.168.1.10/admin', '--offline']) == 1

    payload = json.loads(capsys.readouterr().out)
    assert payload['score'] == 0
    assert [i['type'] for i in payload['issues']] == [
        'Insecure Protocol', 'Suspicious Pattern', 'Suspicious Pattern', 'IP Address'
    ]


def test_unknown_kind_is_rejected():
    with pytest.raises(SystemExit):
        build_parser().parse_args(['phone', '555-0100'])
