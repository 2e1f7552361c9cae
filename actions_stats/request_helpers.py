import json
import traceback
from logging import Logger
from typing import Any, Dict, Mapping, Optional

from requests import Session
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from logger.basic_logger import VERBOSE
from logger.secret_registry import redact

_SENSITIVE_HEADERS = {
    "authorization",
    "x-api-key",
    "api-key",
    "proxy-authorization",
}


def encode_url(url: str) -> str:
    return url.replace(" ", "%20") if url else url


def add_query(url: str, query: str) -> str:
    sep = "&" if "?" in url else "?"
    return f"{url}{sep}{query}"


def build_session(retries_cfg: Optional[Dict[str, Any]]) -> Session:
    """Session with urllib3 connection-level retries mounted for both schemes.

    These cover dropped connections and gateway errors before a response ever
    reaches the client; status checks and application retries happen above.
    """
    s = Session()
    if not retries_cfg:
        return s
    total = int(retries_cfg.get("total", 3))
    connect = int(retries_cfg.get("connect", total))
    read = int(retries_cfg.get("read", total))
    backoff_factor = float(retries_cfg.get("backoff_factor", 0.5))
    status_forcelist = tuple(
        retries_cfg.get("status_forcelist", [502, 503, 504])
    )
    allowed = retries_cfg.get("allowed_methods", ["GET"])
    r = Retry(
        total=total,
        connect=connect,
        read=read,
        backoff_factor=backoff_factor,
        status_forcelist=status_forcelist,
        allowed_methods=frozenset(m.upper() for m in allowed),
        raise_on_status=False,
    )

    adapter = HTTPAdapter(max_retries=r)
    s.mount("https://", adapter)
    s.mount("http://", adapter)
    return s


def apply_session_defaults(sess: Session, opts: Dict[str, Any]) -> None:
    if opts.get("headers"):
        sess.headers.update(opts["headers"])
    if opts.get("proxies"):
        sess.proxies.update(opts["proxies"])
    if "verify" in opts:
        sess.verify = opts["verify"]


def safe_headers(headers: Optional[Mapping[str, str]]) -> Dict[str, str]:
    out = dict(headers or {})
    for k in list(out):
        if k.lower() in _SENSITIVE_HEADERS:
            out[k] = "***REDACTED***"
    return out


def to_json(body: Any) -> str:
    return json.dumps(body, default=str)


def log_request(
    log: Logger,
    method: str,
    url: str,
    headers: Optional[Mapping[str, str]] = None,
    body: Optional[str] = None,
) -> None:
    log.log(VERBOSE, redact(f"HTTP {method}: {url}"))
    if headers:
        log.log(VERBOSE, redact(f"HTTP HEADERS: {safe_headers(headers)}"))
    if body is not None:
        log.log(VERBOSE, redact(f"HTTP BODY: {body}"))


def log_response(log: Logger, resp) -> None:
    log.log(
        VERBOSE,
        redact(
            f"GITHUB REQUEST ID: {resp.headers.get('X-GitHub-Request-Id')}"
        ),
    )
    log.log(VERBOSE, redact(f"RESPONSE ({resp.status_code}): ..."))
    for k, v in safe_headers(resp.headers).items():
        log.debug(redact(f"RESPONSE HEADER: {k} = {v}"))


def log_exception(log: Logger, url: str, e: Exception, prefix: str = ""):
    log.error(
        redact(
            f"{prefix}Error retrieving data from {url}: {e}\nStack Trace: {traceback.format_exc()}"
        )
    )
