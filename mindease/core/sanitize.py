"""
Text sanitization for user-authored and model-authored content.

sanitize_text is applied to every user message before it is stored or put
into a prompt. strip_tags is used for task titles, strip_angle_brackets for
mood note excerpts.
"""

import re

_SCRIPT_BLOCK = re.compile(r"<script\b[^>]*>.*?</script\s*>", re.IGNORECASE | re.DOTALL)
_TAG = re.compile(r"<[^>]*>")


def sanitize_text(text: str) -> str:
    # removal can splice two halves into a new block, so repeat until stable
    prev = None
    out = text or ""
    while prev != out:
        prev = out
        out = _SCRIPT_BLOCK.sub("", out)
    return out.strip()


def strip_tags(text: str) -> str:
    return _TAG.sub("", text or "").strip()


def strip_angle_brackets(text: str) -> str:
    return re.sub(r"[<>]", "", text or "")
