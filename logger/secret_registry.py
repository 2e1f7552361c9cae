import logging
import threading
from typing import Optional, Set

REDACTED = "***"

# process-wide and write-only; a registered value is never removed
_secrets: Set[str] = set()
_lock = threading.Lock()


def register_secret(value: Optional[str]) -> None:
    if not value or not value.strip():
        return
    with _lock:
        _secrets.add(value)


def redact(text) -> str:
    """Replace every registered secret in ``text`` with the placeholder.

    Matching is case-sensitive and substring based. Longer secrets go first so
    a secret that contains another one is masked as a whole.
    """
    out = str(text)
    with _lock:
        ordered = sorted(_secrets, key=len, reverse=True)
    for secret in ordered:
        out = out.replace(secret, REDACTED)
    return out


class RedactSecretsFilter(logging.Filter):
    """Redact each record, including any traceback or stack it carries.

    Traceback and stack text is folded into the message so no handler formats
    it again from the raw exception.
    """

    _formatter = logging.Formatter()

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        if record.exc_info:
            record.exc_text = self._formatter.formatException(record.exc_info)
        if record.exc_text:
            message = f"{message}\n{record.exc_text}"
        if record.stack_info:
            message = f"{message}\n{self._formatter.formatStack(record.stack_info)}"
        record.msg = redact(message)
        record.args = None
        record.exc_info = None
        record.exc_text = None
        record.stack_info = None
        return True
