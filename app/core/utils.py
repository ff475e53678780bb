from __future__ import annotations

import math
from datetime import datetime
from typing import Callable, TypeVar

from flask import request
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from app.core.errors import ValidationError, from_pydantic

SchemaT = TypeVar("SchemaT", bound=BaseModel)


def load_payload(schema: type[SchemaT]) -> SchemaT:
    payload = request.get_json(silent=True)
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Datos inválidos", {"body": ["Se esperaba un objeto JSON"]})
    try:
        return schema.model_validate(payload)
    except PydanticValidationError as exc:
        raise from_pydantic(exc) from exc


def query_int(name: str) -> int | None:
    raw = (request.args.get(name) or "").strip()
    if not raw:
        return None
    if not raw.isdigit():
        raise ValidationError("Datos inválidos", {name: ["Debe ser un número entero"]})
    return int(raw)


def query_datetime(name: str) -> datetime | None:
    raw = (request.args.get(name) or "").strip()
    if not raw:
        return None
    try:
        return datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError as exc:
        raise ValidationError("Datos inválidos", {name: ["Formato de fecha inválido"]}) from exc


def pagination_requested() -> bool:
    return "page" in request.args or "limit" in request.args


def paginate_query(query, serializer: Callable, default_limit: int) -> dict[str, object]:
    page = max(1, _int_arg("page", 1))
    limit = min(100, max(1, _int_arg("limit", default_limit)))
    total = query.order_by(None).count()
    items = query.offset((page - 1) * limit).limit(limit).all()
    return {
        "items": [serializer(item) for item in items],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": math.ceil(total / limit),
            "hasMore": page * limit < total,
        },
    }


def _int_arg(name: str, default: int) -> int:
    raw = (request.args.get(name) or "").strip()
    try:
        return int(raw) if raw else default
    except ValueError:
        return default


def iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None
