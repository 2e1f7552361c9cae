import io
import logging

from logger.secret_registry import (
    REDACTED,
    RedactSecretsFilter,
    redact,
    register_secret,
)


def test_redact_without_secrets_is_identity():
    assert redact("HTTP GET: https://api/x") == "HTTP GET: https://api/x"


def test_registered_secret_is_replaced_everywhere():
    register_secret("s3cr3t")
    assert redact("a=s3cr3t&b=s3cr3t") == f"a={REDACTED}&b={REDACTED}"


def test_redaction_is_case_sensitive():
    register_secret("Token")
    assert redact("token Token TOKEN") == f"token {REDACTED} TOKEN"


def test_blank_values_are_ignored():
    register_secret(None)
    register_secret("")
    register_secret("   ")
    assert redact("nothing to hide") == "nothing to hide"


def test_longer_secret_wins_over_contained_one():
    register_secret("abc")
    register_secret("abcdef")
    assert redact("x abcdef y") == f"x {REDACTED} y"


def test_filter_formats_and_redacts_record():
    register_secret("pw123")
    record = logging.LogRecord(
        "t", logging.INFO, __file__, 1, "connect %s", ("user:pw123",), None
    )
    assert RedactSecretsFilter().filter(record) is True
    assert record.getMessage() == f"connect user:{REDACTED}"


def test_filter_redacts_traceback_and_stack():
    register_secret("tb-secret-42")
    stream = io.StringIO()
    handler = logging.StreamHandler(stream)
    handler.addFilter(RedactSecretsFilter())
    log = logging.getLogger("test_secret_registry.traceback")
    log.addHandler(handler)
    log.propagate = False
    try:
        try:
            raise RuntimeError("bad token tb-secret-42")
        except RuntimeError:
            log.exception("request failed")
        log.error("where", stack_info=True)
    finally:
        log.removeHandler(handler)

    out = stream.getvalue()
    assert "tb-secret-42" not in out
    assert "Traceback (most recent call last)" in out
    assert f"RuntimeError: bad token {REDACTED}" in out
    assert "Stack (most recent call last)" in out
    # traceback is written once, not re-rendered by the handler
    assert out.count("Traceback (most recent call last)") == 1
