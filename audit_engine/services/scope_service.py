"""
Scope Service - pins an audit to catalogue line items and compliance domains.

Scope is editable only until the audit starts; from then on
``scope_locked`` is true and every change is refused.
"""

from datetime import datetime
from typing import Any, Dict, List
import logging

from sqlalchemy import update
from sqlalchemy.orm import Session

from audit_engine.errors import Conflict, InvalidState, ValidationError
from audit_engine.models.audit import Audit, AuditScopeDomain, AuditScopeLineItem, AuditStatus
from audit_engine.models.catalogue import (
    AuditDomain, AuditTemplate, CompanyServiceSelection, DEFAULT_DOMAINS
)
from audit_engine.services.access_control import Actor, SCOPE_AND_CLOSE, require_role
from audit_engine.services.audit_trail import AuditTrailService
from audit_engine.services.guards import fetch_for_company

logger = logging.getLogger(__name__)


class ScopeService:
    """Audit scope selection."""

    def __init__(self, session: Session):
        self.session = session
        self.trail = AuditTrailService(session)

    def ensure_default_domains(self, company_id: str) -> List[AuditDomain]:
        """Create any missing default domains for a company and return all of them."""
        existing = {
            d.code for d in self.session.query(AuditDomain).filter(
                AuditDomain.company_id == company_id
            )
        }
        for code, name, description in DEFAULT_DOMAINS:
            if code.value not in existing:
                self.session.add(AuditDomain(
                    company_id=company_id,
                    code=code.value,
                    name=name,
                    description=description,
                    is_enabled_by_default=True,
                ))
        self.session.flush()

        return self.session.query(AuditDomain).filter(
            AuditDomain.company_id == company_id
        ).order_by(AuditDomain.code).all()

    def set_scope_line_items(self, actor: Actor, audit_id: str,
                             line_item_ids: List[str]) -> List[AuditScopeLineItem]:
        """Replace the audit's selected line items."""
        require_role(actor, SCOPE_AND_CLOSE, "change audit scope")
        audit = self._editable_audit(actor, audit_id)

        wanted = list(dict.fromkeys(line_item_ids or []))
        if not wanted:
            raise ValidationError("Select at least one line item")

        offered = set(CompanyServiceSelection.line_item_ids_for(self.session, actor.company_id))
        unknown = [item_id for item_id in wanted if item_id not in offered]
        if unknown:
            raise ValidationError(
                "Line items are not part of the company's selected services",
                {'unknown_line_item_ids': unknown}
            )

        before = [row.line_item_id for row in audit.scope_line_items]
        self.session.query(AuditScopeLineItem).filter(
            AuditScopeLineItem.audit_id == audit.id
        ).delete(synchronize_session=False)
        self.session.add_all([
            AuditScopeLineItem(audit_id=audit.id, line_item_id=item_id) for item_id in wanted
        ])
        self._touch_unlocked(audit)
        self.session.expire(audit, ['scope_line_items'])

        self.trail.log_change(
            actor.company_id, actor.user_id, 'AUDIT_SCOPE_UPDATED', 'audit', audit.id,
            before={'line_item_ids': before}, after={'line_item_ids': wanted}
        )
        logger.info(f"Audit {audit.id} scoped to {len(wanted)} line items")
        return audit.scope_line_items

    def set_scope_domains(self, actor: Actor, audit_id: str,
                          domain_ids: List[str]) -> List[AuditScopeDomain]:
        """Replace the audit's included compliance domains."""
        require_role(actor, SCOPE_AND_CLOSE, "change audit scope")
        audit = self._editable_audit(actor, audit_id)

        wanted = list(dict.fromkeys(domain_ids or []))
        known = {
            row[0] for row in self.session.query(AuditDomain.id).filter(
                AuditDomain.company_id == actor.company_id
            )
        }
        unknown = [domain_id for domain_id in wanted if domain_id not in known]
        if unknown:
            raise ValidationError("Unknown audit domains", {'unknown_domain_ids': unknown})

        before = [row.domain_id for row in audit.scope_domains]
        self.session.query(AuditScopeDomain).filter(
            AuditScopeDomain.audit_id == audit.id
        ).delete(synchronize_session=False)
        self.session.add_all([
            AuditScopeDomain(audit_id=audit.id, domain_id=domain_id, is_included=True)
            for domain_id in wanted
        ])
        self._touch_unlocked(audit)
        self.session.expire(audit, ['scope_domains'])

        self.trail.log_change(
            actor.company_id, actor.user_id, 'AUDIT_DOMAINS_UPDATED', 'audit', audit.id,
            before={'domain_ids': before}, after={'domain_ids': wanted}
        )
        return audit.scope_domains

    def select_template(self, actor: Actor, audit_id: str, template_id: str) -> Audit:
        """Bind a DRAFT audit to an assessment template."""
        require_role(actor, SCOPE_AND_CLOSE, "select the audit template")
        audit = fetch_for_company(self.session, Audit, audit_id, actor.company_id, "Audit")
        if audit.status != AuditStatus.DRAFT.value:
            raise InvalidState(
                "Template can only be selected while the audit is in DRAFT",
                {'current_status': audit.status}
            )

        template = fetch_for_company(self.session, AuditTemplate, template_id,
                                     actor.company_id, "Audit template")
        if not template.is_active:
            raise ValidationError("Audit template is not active")

        before = audit.template_id
        audit.template_id = template.id
        self.session.flush()

        self.trail.log_change(
            actor.company_id, actor.user_id, 'AUDIT_TEMPLATE_SELECTED', 'audit', audit.id,
            before={'template_id': before}, after={'template_id': template.id}
        )
        return audit

    def get_scope(self, actor: Actor, audit_id: str) -> Dict[str, Any]:
        audit = fetch_for_company(self.session, Audit, audit_id, actor.company_id, "Audit")
        return {
            'audit_id': audit.id,
            'scope_locked': audit.scope_locked,
            'template_id': audit.template_id,
            'line_item_ids': [row.line_item_id for row in audit.scope_line_items],
            'domain_ids': [row.domain_id for row in audit.scope_domains if row.is_included],
        }

    def _editable_audit(self, actor: Actor, audit_id: str) -> Audit:
        audit = fetch_for_company(self.session, Audit, audit_id, actor.company_id, "Audit")
        if audit.scope_locked:
            raise InvalidState("Audit scope is locked", {'current_status': audit.status})
        return audit

    def _touch_unlocked(self, audit: Audit) -> None:
        """Write only if the scope is still unlocked at commit time."""
        self.session.flush()
        result = self.session.execute(
            update(Audit)
            .where(Audit.id == audit.id, Audit.scope_locked.is_(False))
            .values(updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise Conflict("Audit scope was locked concurrently; reload and retry")
