from unittest.mock import MagicMock

import pytest

from siren.core.auth import extract_api_key, get_client_ip, is_ip_allowed


def _request(headers=None, host="127.0.0.1"):
    request = MagicMock()
    request.headers = {k.lower(): v for k, v in (headers or {}).items()}
    request.client.host = host
    return request


@pytest.mark.parametrize(
    "client_ip,allowed,expected",
    [
        ("10.1.2.3", ["10.0.0.0/8"], True),
        ("192.168.1.10", ["192.168.1.10"], True),
        ("192.168.1.11", ["192.168.1.10"], False),
        ("2001:db8::1", ["2001:db8::/32"], True),
        ("not-an-ip", ["10.0.0.0/8"], False),
        ("10.1.2.3", ["garbage", "10.1.2.3"], True),
        ("10.1.2.3", [], False),
    ],
)
def test_is_ip_allowed(client_ip, allowed, expected):
    assert is_ip_allowed(client_ip, allowed) is expected


def test_client_ip_prefers_forwarded_for():
    request = _request({"X-Forwarded-For": " 10.0.0.7 , 10.0.0.8", "X-Real-IP": "10.0.0.9"})

    assert get_client_ip(request) == "10.0.0.7"


def test_client_ip_uses_real_ip_then_peer():
    assert get_client_ip(_request({"X-Real-IP": "10.0.0.9"})) == "10.0.0.9"
    assert get_client_ip(_request(host="172.16.0.2")) == "172.16.0.2"


def test_extract_api_key():
    assert extract_api_key(_request({"X-API-Key": "abc"})) == "abc"
    assert extract_api_key(_request({"Authorization": "Bearer xyz"})) == "xyz"
    assert extract_api_key(_request({"Authorization": "Basic xyz"})) is None
