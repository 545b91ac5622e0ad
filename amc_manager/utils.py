"""
Utility functions shared across the blueprints. This includes:
- get_json_body: read a JSON object payload or fail with a 400 envelope.
- json_formdata: flatten a JSON object into form data for WTForms validation.
- query_int / parse_optional_date / parse_bool: query-string parsing (400 on bad input).
- load_or_404: primary-key lookup that treats out-of-range ids as missing.
- paginate_query / pagination_params: page + per_page handling with bounds.
- apply_sort: whitelist-based "field" / "-field" ordering.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Callable, Dict, Iterable

from flask import abort, current_app, request
from werkzeug.datastructures import MultiDict

from .errors import ApiError
from .extensions import db


def get_json_body() -> Dict[str, Any]:
    """Return the request JSON object; raise 400 if missing or not an object."""
    payload = request.get_json(silent=True)
    if payload is None:
        raise ApiError("Request body must be valid JSON.", 400)
    if not isinstance(payload, dict):
        raise ApiError("Request body must be a JSON object.", 400)
    return payload


def json_formdata(payload: Dict[str, Any]) -> MultiDict:
    """
    Convert a JSON object to a MultiDict WTForms can process.

    - None values are dropped (treated as "not provided").
    - Booleans become "y" / "" (WTForms BooleanField semantics).
    - Lists and objects are skipped; nested collections are validated separately.
    - Everything else is stringified.
    """
    data = MultiDict()
    for key, value in payload.items():
        if value is None or isinstance(value, (list, dict)):
            continue
        if isinstance(value, bool):
            data.add(key, "y" if value else "")
        else:
            data.add(key, str(value))
    return data


# Primary keys are 32-bit integers on every supported backend
MAX_DB_ID = 2**31 - 1
MAX_PAGE = 1_000_000


def _invalid_param(name: str, message: str) -> ApiError:
    return ApiError("Invalid query parameter.", 400, {name: [message]})


def query_int(
    name: str,
    default: int | None = None,
    *,
    min_value: int | None = None,
    max_value: int | None = None,
) -> int | None:
    """
    Read an integer query parameter.

    Missing or blank gives default; anything that is not an integer within
    [min_value, max_value] is a 400.
    """
    raw = (request.args.get(name) or "").strip()
    if raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise _invalid_param(name, "Must be an integer.")

    if min_value is not None and value < min_value:
        raise _invalid_param(name, f"Must be {min_value} or greater.")
    if max_value is not None and value > max_value:
        raise _invalid_param(name, f"Must be {max_value} or less.")
    return value


def parse_optional_date(value: str | None, field: str) -> date | None:
    """Parse an ISO date (YYYY-MM-DD) from the query string; 400 on bad input."""
    raw = (value or "").strip()
    if not raw:
        return None
    try:
        return datetime.strptime(raw, "%Y-%m-%d").date()
    except ValueError:
        raise ApiError("Invalid query parameter.", 400, {field: ["Expected a date in YYYY-MM-DD format."]})


def parse_bool(value: str | None) -> bool | None:
    raw = (value or "").strip().lower()
    if raw in ("1", "true", "yes", "y"):
        return True
    if raw in ("0", "false", "no", "n"):
        return False
    return None


def pagination_params() -> tuple[int, int]:
    """Read page/per_page from the query string, clamped to sane bounds."""
    default_per_page = current_app.config.get("DEFAULT_PER_PAGE", 20)
    max_per_page = current_app.config.get("MAX_PER_PAGE", 100)

    page = query_int("page", 1, min_value=1, max_value=MAX_PAGE)
    per_page = query_int("per_page", default_per_page, min_value=1)

    return page, min(per_page, max_per_page)


def paginate_query(q, serializer: Callable[[Any], Dict[str, Any]]) -> Dict[str, Any]:
    """Paginate a query and return the list envelope {items, pagination}."""
    page, per_page = pagination_params()
    pager = q.paginate(page=page, per_page=per_page, error_out=False)

    return {
        "items": [serializer(obj) for obj in pager.items],
        "pagination": {
            "page": pager.page,
            "per_page": pager.per_page,
            "total": pager.total,
            "pages": pager.pages,
        },
    }


def apply_sort(q, model, allowed: Iterable[str], default: str):
    """
    Order by ?sort=field or ?sort=-field (descending).

    Only whitelisted columns are accepted; ties are broken by id.
    """
    allowed = set(allowed)
    raw = (request.args.get("sort") or default).strip()
    descending = raw.startswith("-")
    field = raw.lstrip("-")

    if field not in allowed:
        raise ApiError(
            "Invalid query parameter.",
            400,
            {"sort": [f"Must be one of: {', '.join(sorted(allowed))} (prefix with '-' for descending)."]},
        )

    column = getattr(model, field)
    return q.order_by(column.desc() if descending else column.asc(), model.id.asc())


def like_pattern(value: str) -> str:
    """Substring LIKE pattern with wildcard characters escaped."""
    escaped = value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def load_or_404(model, obj_id: int, label: str):
    """Fetch model by primary key or abort with "<label> <id> not found."."""
    description = f"{label} {obj_id} not found."
    if not 0 < obj_id <= MAX_DB_ID:
        abort(404, description=description)
    return db.get_or_404(model, obj_id, description=description)
