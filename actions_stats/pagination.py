import copy
import math
from logging import Logger
from typing import (
    Any,
    Callable,
    Dict,
    Iterator,
    List,
    Mapping,
    Optional,
    Tuple,
    TypeVar,
)

from actions_stats.errors import PageParseError, ValidationError
from actions_stats.parsing import (
    decode_rest_page,
    extract_items,
    extract_page_info,
    parse_json,
)
from actions_stats.request_helpers import add_query

T = TypeVar("T")

PER_PAGE = 100

# send(method, url, body=None, custom_headers=None) -> (content, headers)
Send = Callable[..., Tuple[str, Mapping[str, str]]]


def _page_url(url: str, page: int) -> str:
    return add_query(url, f"page={page}&per_page={PER_PAGE}")


def _select(
    items: List[Any],
    predicate: Callable[[Any], bool],
    selector: Callable[[Any], T],
) -> List[T]:
    return [selector(item) for item in items if predicate(item)]


def fetch_all(
    send: Send,
    log: Logger,
    url: str,
    data: Callable[[Any], Any],
    predicate: Callable[[Any], bool],
    selector: Callable[[Any], T],
) -> List[T]:
    """
    Offset pagination over ``{url}?page=N&per_page=100``.

    ``total_count`` is read from the first page only and assumed stable for the
    rest of the walk. Rows are merged with duplicate elimination, keeping the
    order in which they first arrived.
    """
    if data is None:
        raise ValidationError("A result array selector must be provided.")
    if predicate is None:
        raise ValidationError("A row predicate must be provided.")
    if selector is None:
        raise ValidationError("A row selector must be provided.")

    page = 1
    content, _ = send("GET", _page_url(url, page))
    document = parse_json(content)
    envelope = decode_rest_page(document)

    results: Dict[T, None] = dict.fromkeys(
        _select(extract_items(data, document), predicate, selector)
    )
    total_count = envelope.total_count or 0
    total_pages = math.ceil(total_count / PER_PAGE)

    while page * PER_PAGE < total_count:
        page += 1

        log.info(f"Retrieving Page {page} / {total_pages}...")

        content, _ = send("GET", _page_url(url, page))
        document = parse_json(content)
        for row in _select(extract_items(data, document), predicate, selector):
            results.setdefault(row, None)

    return list(results)


def stream_all(
    send: Send,
    url: str,
    body: Any,
    result_collection_selector: Callable[[Any], Any],
    page_info_selector: Callable[[Any], Any],
    first: int = PER_PAGE,
    after: Optional[str] = None,
    custom_headers: Optional[Mapping[str, str]] = None,
) -> Iterator[Any]:
    """
    Cursor (GraphQL) pagination.

    Arguments are checked when called; the returned generator is lazy, finite
    and not restartable. Each ``next()`` may issue a POST and may raise.
    """
    if result_collection_selector is None:
        raise ValidationError(
            "A result collection selector must be provided."
        )
    if page_info_selector is None:
        raise ValidationError("A pageInfo selector must be provided.")
    if first is None or int(first) < 1:
        raise ValidationError("Page size must be a positive integer.")

    if body is not None and not isinstance(body, Mapping):
        raise ValidationError("The GraphQL body must be a JSON object.")
    payload = copy.deepcopy(dict(body or {}))
    if payload.get("variables") is None:
        payload["variables"] = {}
    elif not isinstance(payload["variables"], Mapping):
        raise ValidationError("GraphQL variables must be a JSON object.")
    payload["variables"] = dict(payload["variables"])
    payload["variables"]["first"] = int(first)

    return _iter_cursor_pages(
        send,
        url,
        payload,
        result_collection_selector,
        page_info_selector,
        after,
        custom_headers,
    )


def _iter_cursor_pages(
    send: Send,
    url: str,
    payload: Dict[str, Any],
    result_collection_selector: Callable[[Any], Any],
    page_info_selector: Callable[[Any], Any],
    after: Optional[str],
    custom_headers: Optional[Mapping[str, str]],
) -> Iterator[Any]:
    has_next_page = True
    while has_next_page:
        payload["variables"]["after"] = after

        content, _ = send(
            "POST", url, body=payload, custom_headers=custom_headers
        )
        document = parse_json(content)
        for item in extract_items(result_collection_selector, document):
            yield item

        page_info = extract_page_info(page_info_selector, document)
        if page_info is None:
            return

        has_next_page = page_info.hasNextPage
        if has_next_page and page_info.endCursor is None:
            # would request the same page forever
            raise PageParseError("pageInfo has a next page but no endCursor")
        after = page_info.endCursor
