import json
import re
from decimal import Decimal
from typing import Any, List, Tuple

from storyqa_agent.utils.exceptions import MalformedResponseError

SEGMENT_PATTERN = re.compile(r"^([^\[\]]*)((?:\[\d+\])*)$")
INDEX_PATTERN = re.compile(r"\[(\d+)\]")

_MISSING = object()


def parse_json(body: str) -> Any:
    """Parse a response body, keeping numbers as ``Decimal`` so their text survives."""
    try:
        return json.loads(body, parse_float=Decimal)
    except (TypeError, ValueError) as e:
        raise MalformedResponseError(f"Response body is not valid JSON: {e}") from e


def _split_path(path: str) -> List[Tuple[str, List[int]]]:
    segments = []
    for part in path.strip().lstrip("$").strip(".").split("."):
        match = SEGMENT_PATTERN.match(part)
        if not match:
            segments.append((part, []))
            continue
        segments.append((match.group(1), [int(i) for i in INDEX_PATTERN.findall(match.group(2))]))
    return segments


def _walk(node: Any, path: str) -> Any:
    if not path.strip():
        return node
    for name, indexes in _split_path(path):
        if name:
            if not isinstance(node, dict) or name not in node:
                return _MISSING
            node = node[name]
        for index in indexes:
            if not isinstance(node, list) or index >= len(node):
                return _MISSING
            node = node[index]
    return node


def _default(value: Any) -> Any:
    if isinstance(value, Decimal):
        return float(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def stringify(value: Any) -> str:
    if value is _MISSING:
        return ""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return value
    if isinstance(value, (int, Decimal)):
        return str(value)
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=_default)


def extract_json_value(body: str, path: str) -> str:
    """Extract ``path`` (``user.items[0].id`` style) from a JSON text.

    Raises MalformedResponseError when ``body`` is not JSON. A path that does
    not resolve yields an empty string.
    """
    return stringify(_walk(parse_json(body), path))


def json_path_exists(body: str, path: str) -> bool:
    return _walk(parse_json(body), path) is not _MISSING
