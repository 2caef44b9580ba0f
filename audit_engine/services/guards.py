"""
Transactional Guards

Tenant-scoped lookups and compare-and-swap status updates shared by the
services.
"""

import logging
from enum import Enum
from typing import Any, Dict, Type, TypeVar

from sqlalchemy import update
from sqlalchemy.orm import Session

from audit_engine.errors import Conflict, NotFound, ValidationError

logger = logging.getLogger(__name__)

T = TypeVar('T')


def fetch_for_company(session: Session, model: Type[T], entity_id: str,
                      company_id: str, label: str) -> T:
    """Load a row owned by ``company_id`` or raise NotFound."""
    obj = model.get_for_company(session, entity_id, company_id)
    if obj is None:
        raise NotFound(f"{label} not found", {'id': entity_id})
    return obj


def compare_and_set_status(session: Session, obj: Any, expected: str,
                           values: Dict[str, Any]) -> None:
    """
    Apply ``values`` to ``obj``'s row only if its status is still ``expected``.

    Issues a single ``UPDATE ... WHERE id = :id AND status = :expected``.
    A zero row count means someone else moved the row first.
    """
    model = type(obj)
    session.flush()
    result = session.execute(
        update(model)
        .where(model.id == obj.id, model.status == expected)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        logger.warning(
            f"Lost status race on {model.__name__} {obj.id}: expected {expected}"
        )
        raise Conflict(
            f"{model.__name__} was modified concurrently; reload and retry",
            {'expected_status': expected}
        )
    session.expire(obj)


E = TypeVar('E', bound=Enum)


def parse_enum(enum_cls: Type[E], value: Any, field: str) -> E:
    """Coerce caller input to ``enum_cls`` or raise ValidationError."""
    try:
        return enum_cls(value)
    except ValueError:
        raise ValidationError(
            f"Invalid {field} {value!r}",
            {'field': field, 'allowed_values': [member.value for member in enum_cls]}
        )
