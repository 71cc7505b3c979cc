import json
import re
from typing import Callable, Optional

from mindease.core.sanitize import strip_tags

MAX_TASKS = 5
MAX_TITLE_LEN = 500

_BULLET = re.compile(r"^[-*•]\s*")


def _strip_code_fences(s: str) -> str:
    s = s.strip()
    # remove ```json ... ``` or ``` ... ```
    if s.startswith("```"):
        s = re.sub(r"^```[a-zA-Z0-9]*\s*", "", s)
        s = re.sub(r"\s*```$", "", s)
    return s.strip()


def _as_string_list(value) -> Optional[list[str]]:
    if not isinstance(value, list) or not value:
        return None
    items = [v for v in value if isinstance(v, str)]
    return items or None


def parse_bracket_span(text: str) -> Optional[list[str]]:
    """First '[' through the last ']' parsed as a JSON array of strings."""
    start = text.find("[")
    end = text.rfind("]")
    if start == -1 or end <= start:
        return None
    try:
        return _as_string_list(json.loads(text[start : end + 1]))
    except json.JSONDecodeError:
        return None


def parse_whole_json(text: str) -> Optional[list[str]]:
    try:
        return _as_string_list(json.loads(_strip_code_fences(text)))
    except json.JSONDecodeError:
        return None


def parse_bullet_lines(text: str) -> Optional[list[str]]:
    lines = []
    for line in text.splitlines():
        if not line.strip():
            continue
        item = _BULLET.sub("", line.strip()).strip()
        if item:
            lines.append(item)
    return lines[:MAX_TASKS] or None


# tried in order; the first parser that returns a list wins
TASK_PARSERS: tuple[Callable[[str], Optional[list[str]]], ...] = (
    parse_bracket_span,
    parse_whole_json,
    parse_bullet_lines,
)


def parse_task_list(text: str) -> tuple[list[str], str]:
    """
    Pull task strings out of free model text.
    Returns (candidates, name of the parser that produced them); ([], "none") if nothing did.
    """
    text = text or ""
    for parser in TASK_PARSERS:
        result = parser(text)
        if result is not None:
            return result, parser.__name__
    return [], "none"


def clean_task_titles(candidates: list[str]) -> list[str]:
    """Tag-strip every candidate, drop empty or over-long ones, cap the list."""
    titles = []
    for c in candidates:
        title = strip_tags(c)
        if 0 < len(title) <= MAX_TITLE_LEN:
            titles.append(title)
    return titles[:MAX_TASKS]
