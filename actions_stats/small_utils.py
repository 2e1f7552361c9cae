from typing import Any, Dict, Optional

ALLOWED_REQUEST_KW = {
    "headers",
    "timeout",
    "verify",
    "proxies",
}


def whitelist_request_opts(opts: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in (opts or {}).items() if k in ALLOWED_REQUEST_KW}


def dig(obj: Any, path: Optional[str]):
    if not path:
        return None
    cur = obj
    for key in path.split("."):
        if not isinstance(cur, dict):
            return None
        cur = cur.get(key)
        if cur is None:
            return None
    return cur


def has_value(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True
