"""
Page envelope decoding.

Every page body goes through ``parse_json`` and one of the envelope models
before callers' extractors, predicates and projections see it, so a malformed
page fails in one place with ``PageParseError``.
"""

import json
from typing import Any, Callable, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from actions_stats.errors import PageParseError


class RestPage(BaseModel):
    """Offset-paged REST envelope; only ``total_count`` is interpreted."""

    model_config = ConfigDict(extra="allow")

    total_count: Optional[int] = Field(default=None, ge=0)


class PageInfo(BaseModel):
    """GraphQL ``pageInfo`` object."""

    model_config = ConfigDict(extra="ignore")

    hasNextPage: bool = False
    endCursor: Optional[str] = None


def parse_json(content: str) -> Any:
    try:
        return json.loads(content)
    except (TypeError, ValueError) as e:
        raise PageParseError(f"Response is not valid JSON: {e}") from e


def decode_rest_page(document: Any) -> RestPage:
    try:
        return RestPage.model_validate(document)
    except PydanticValidationError as e:
        raise PageParseError(f"Invalid page envelope: {e}") from e


def decode_page_info(raw: Any) -> Optional[PageInfo]:
    if raw is None:
        return None
    try:
        return PageInfo.model_validate(raw)
    except PydanticValidationError as e:
        raise PageParseError(f"Invalid pageInfo object: {e}") from e


def extract_items(
    extract: Callable[[Any], Any], document: Any
) -> List[Any]:
    try:
        items = extract(document)
    except (KeyError, TypeError, IndexError) as e:
        raise PageParseError(
            f"Page envelope is missing the result array: {e!r}"
        ) from e
    if not isinstance(items, list):
        raise PageParseError(
            f"Expected a JSON array of results but got {type(items).__name__}"
        )
    return items


def extract_page_info(
    extract: Callable[[Any], Any], document: Any
) -> Optional[PageInfo]:
    try:
        raw = extract(document)
    except (KeyError, TypeError, IndexError) as e:
        raise PageParseError(
            f"Page envelope is missing pageInfo: {e!r}"
        ) from e
    return decode_page_info(raw)
