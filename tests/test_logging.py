from __future__ import annotations

import logging

from app import SECRET_ENV_VARS, _RedactingFormatter, _secret_values


def _format(formatter: logging.Formatter, msg: str, *args) -> str:
    record = logging.LogRecord("x", logging.INFO, __file__, 1, msg, args, None)
    return formatter.format(record)


def test_redacting_formatter_masks_secrets() -> None:
    formatter = _RedactingFormatter(["s3cret", ""], fmt="%(message)s")

    assert _format(formatter, "token=%s", "s3cret") == "token=***"


def test_longer_secret_is_masked_whole() -> None:
    formatter = _RedactingFormatter(["abc", "abcdef"], fmt="%(message)s")

    assert _format(formatter, "key=abcdef") == "key=***"


def test_secret_env_vars_are_always_collected(monkeypatch) -> None:
    for name in SECRET_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("API_TOKEN", "abc")
    monkeypatch.setenv("MONGODB_URI", "mongodb://user:pw@db")
    monkeypatch.setenv("CUSTOM_SECRET", "xyz")

    assert sorted(_secret_values({})) == ["abc", "mongodb://user:pw@db"]
    assert sorted(_secret_values({"extra": ["CUSTOM_SECRET"]})) == [
        "abc",
        "mongodb://user:pw@db",
        "xyz",
    ]
    assert _secret_values({"enabled": False}) == []
