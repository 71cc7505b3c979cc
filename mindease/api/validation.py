"""
Body parsing for the JSON endpoints.

Two failure kinds, both client errors: the body is not JSON at all
(INVALID_FORMAT) or it is JSON that does not fit the schema (VALIDATION_ERROR).
"""

import json
from typing import Type, TypeVar

from pydantic import BaseModel, ValidationError

from mindease.core.errors import ClientError
from mindease.core.logging import get_logger

log = get_logger("api.validation")

M = TypeVar("M", bound=BaseModel)


def parse_body(raw: bytes, model: Type[M]) -> M:
    if not raw or not raw.strip():
        data = {}
    else:
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError):
            raise ClientError("Invalid request format", code="INVALID_FORMAT")
    try:
        return model.model_validate(data)
    except ValidationError as e:
        log.info(f"{model.__name__} rejected: {e.error_count()} error(s)")
        raise ClientError("Invalid request data", code="VALIDATION_ERROR")
