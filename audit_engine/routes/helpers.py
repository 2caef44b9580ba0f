"""
Route helpers - request parsing shared by the blueprints.
"""

from datetime import date
from typing import Any, Dict, Iterable, Optional

from flask import g, request

from audit_engine.errors import ValidationError
from audit_engine.services.access_control import Actor


def current_actor() -> Actor:
    return g.actor


def json_body(required: Iterable[str] = (), lists: Iterable[str] = (),
              integers: Iterable[str] = ()) -> Dict[str, Any]:
    """
    Request JSON as a dict, rejecting missing required fields.

    Fields are strings unless named in ``lists`` or ``integers``; a value
    of any other type is rejected before it reaches a service.
    """
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    missing = [name for name in required if data.get(name) in (None, '')]
    if missing:
        raise ValidationError(
            f"{', '.join(missing)} {'is' if len(missing) == 1 else 'are'} required",
            {'missing_fields': missing}
        )

    lists, integers = set(lists), set(integers)
    for name, value in data.items():
        if value is None:
            continue
        if name in lists:
            expected, valid = 'a list', isinstance(value, list)
        elif name in integers:
            expected = 'an integer'
            valid = isinstance(value, int) and not isinstance(value, bool)
        else:
            expected, valid = 'a string', isinstance(value, str)
        if not valid:
            raise ValidationError(f"{name} must be {expected}",
                                  {'field': name, 'expected': expected})
    return data


def parse_date(value: Optional[str], field: str) -> Optional[date]:
    if value in (None, ''):
        return None
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an ISO date (YYYY-MM-DD)", {'field': field})
