from http import HTTPStatus
from logging import Logger
from typing import Any, Callable, Iterator, List, Mapping, Optional, Tuple, TypeVar

import requests
from requests import Session

from actions_stats import pagination
from actions_stats.errors import HttpError
from actions_stats.request_helpers import (
    encode_url,
    log_request,
    log_response,
    to_json,
)
from actions_stats.retry_policy import RetryPolicy

T = TypeVar("T")


class GithubClient:
    """
    HTTP client for the GitHub REST and GraphQL APIs.

    Holds no per-call state beyond the shared ``requests.Session`` so one
    instance can be used by independent callers.
    """

    def __init__(
        self,
        log: Logger,
        session: Session,
        retry_policy: RetryPolicy,
        personal_access_token: Optional[str],
        version_comments: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.log = log
        self.session = session
        self.retry_policy = retry_policy
        self.timeout = timeout

        if self.session is not None:
            self.session.headers["Accept"] = "application/vnd.github.v3+json"
            if personal_access_token:
                self.session.headers["Authorization"] = (
                    f"Bearer {personal_access_token}"
                )
            if version_comments:
                self.session.headers["User-Agent"] = (
                    f"{self.session.headers.get('User-Agent', '')} {version_comments}".strip()
                )

    # ------------ verbs ------------
    def get(
        self, url: str, custom_headers: Optional[Mapping[str, str]] = None
    ) -> str:
        content, _ = self.retry_policy.http_retry(
            lambda: self.send("GET", url, custom_headers=custom_headers),
            lambda _: True,
        )
        return content

    def get_non_success(self, url: str, status: int) -> str:
        content, _ = self.send("GET", url, expected_status=status)
        return content

    def get_all(
        self,
        url: str,
        data: Callable[[Any], Any],
        predicate: Callable[[Any], bool],
        selector: Callable[[Any], T],
    ) -> List[T]:
        return pagination.fetch_all(
            self.send, self.log, url, data, predicate, selector
        )

    def post(
        self,
        url: str,
        body: Any,
        custom_headers: Optional[Mapping[str, str]] = None,
    ) -> str:
        content, _ = self.send(
            "POST", url, body=body, custom_headers=custom_headers
        )
        return content

    def post_graphql_with_pagination(
        self,
        url: str,
        body: Any,
        result_collection_selector: Callable[[Any], Any],
        page_info_selector: Callable[[Any], Any],
        first: int = pagination.PER_PAGE,
        after: Optional[str] = None,
        custom_headers: Optional[Mapping[str, str]] = None,
    ) -> Iterator[Any]:
        return pagination.stream_all(
            self.send,
            url,
            body,
            result_collection_selector,
            page_info_selector,
            first=first,
            after=after,
            custom_headers=custom_headers,
        )

    def put(
        self,
        url: str,
        body: Any,
        custom_headers: Optional[Mapping[str, str]] = None,
    ) -> str:
        content, _ = self.send(
            "PUT", url, body=body, custom_headers=custom_headers
        )
        return content

    def patch(
        self,
        url: str,
        body: Any,
        custom_headers: Optional[Mapping[str, str]] = None,
    ) -> str:
        content, _ = self.send(
            "PATCH", url, body=body, custom_headers=custom_headers
        )
        return content

    def delete(
        self, url: str, custom_headers: Optional[Mapping[str, str]] = None
    ) -> str:
        content, _ = self.send("DELETE", url, custom_headers=custom_headers)
        return content

    # ------------ dispatch ------------
    def send(
        self,
        method: str,
        url: str,
        body: Any = None,
        expected_status: Optional[int] = None,
        custom_headers: Optional[Mapping[str, str]] = None,
    ) -> Tuple[str, Mapping[str, str]]:
        """Issue one request and check its status.

        ``expected_status=None`` accepts any 2xx; otherwise the response must
        carry exactly that status. Anything else raises ``HttpError``.
        """
        url = encode_url(url)
        method = method.upper()

        data = None
        if body is not None:
            data = to_json(body)
        log_request(self.log, method, url, custom_headers, data)

        headers = dict(custom_headers or {})
        if data is not None:
            headers.setdefault("Content-Type", "application/json")

        resp = self.session.request(
            method,
            url,
            data=data.encode("utf-8") if data is not None else None,
            headers=headers or None,
            timeout=self.timeout,
        )
        content = resp.text
        log_response(self.log, resp)

        if expected_status is None:
            try:
                resp.raise_for_status()
            except requests.HTTPError as e:
                raise HttpError(url, resp.status_code) from e
            if not HTTPStatus.OK <= resp.status_code < 300:
                raise HttpError(url, resp.status_code)
        elif resp.status_code != int(expected_status):
            raise HttpError(url, resp.status_code, int(expected_status))

        return content, resp.headers
