import pytest

from datacore.utils.masking import is_sensitive_key, mask_sensitive, sanitize_message, sanitize_params


@pytest.mark.parametrize(
    "key, expected",
    [
        ("password", True),
        ("DB_PASSWORD", True),
        ("api_key", True),
        ("Authorization", True),
        ("refresh_token", True),
        ("client_secret", True),
        ("title", False),
        ("owner", False),
        (42, False),
    ],
)
def test_is_sensitive_key(key, expected):
    assert is_sensitive_key(key) is expected


def test_mask_sensitive_is_recursive_and_non_mutating():
    payload = {"user": "app", "password": "pw", "nested": {"token": "t", "ok": 1}}

    masked = mask_sensitive(payload)

    assert masked == {"user": "app", "password": "***", "nested": {"token": "***", "ok": 1}}
    assert payload["password"] == "pw"


def test_mask_sensitive_empty():
    assert mask_sensitive(None) == {}


def test_sanitize_params():
    assert sanitize_params(None) == {}
    assert sanitize_params({"password": "x", "id": 1}) == {"password": "***", "id": 1}
    assert sanitize_params([{"a": 1}, {"a": 2}, {"a": 3}]) == {"record_count": 3}
    assert sanitize_params("raw") == "raw"


@pytest.mark.parametrize(
    "message, secret",
    [
        ("could not connect to mysql+pymysql://root:hunter2@db:3306/app", "hunter2"),
        ("login failed: password=hunter2; retry later", "hunter2"),
        ("bad dsn user=app pwd='hunter 2'", "hunter 2"),
    ],
)
def test_sanitize_message(message, secret):
    cleaned = sanitize_message(message)

    assert secret not in cleaned
    assert "***" in cleaned


def test_sanitize_message_empty():
    assert sanitize_message(None) == ""
