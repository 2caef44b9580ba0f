"""
Access Control

Actor identity and role gating. Identity itself comes from the
authentication collaborator; the engine only checks roles.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable

from audit_engine.errors import Forbidden

logger = logging.getLogger(__name__)


class Role(str, Enum):
    """Company user roles."""
    COMPANY_ADMIN = 'CompanyAdmin'      # Lead auditor
    AUDITOR = 'Auditor'
    REVIEWER = 'Reviewer'
    STAFF_READ_ONLY = 'StaffReadOnly'


@dataclass(frozen=True)
class Actor:
    """Authenticated company user performing an action."""
    user_id: str
    company_id: str
    role: Role


# Role groups
SCOPE_AND_CLOSE = frozenset({Role.COMPANY_ADMIN, Role.AUDITOR})
LEAD_AUDITOR = frozenset({Role.COMPANY_ADMIN})
EVIDENCE_REVIEWERS = frozenset({Role.COMPANY_ADMIN, Role.AUDITOR, Role.REVIEWER})
IN_REVIEW_RESPONDERS = frozenset({Role.COMPANY_ADMIN, Role.REVIEWER})
FINDING_CLOSERS = frozenset({Role.COMPANY_ADMIN, Role.REVIEWER})
CONTRIBUTORS = frozenset({Role.COMPANY_ADMIN, Role.AUDITOR, Role.REVIEWER})


def require_role(actor: Actor, roles: Iterable[Role], action: str) -> None:
    """Raise Forbidden unless the actor holds one of ``roles``."""
    allowed = frozenset(roles)
    if actor.role not in allowed:
        logger.warning(
            f"Access denied: {actor.user_id} ({actor.role.value}) attempted {action}"
        )
        raise Forbidden(
            f"Role {actor.role.value} may not {action}",
            {'required_roles': sorted(r.value for r in allowed)}
        )
