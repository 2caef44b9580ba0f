"""
Audit Trail

Writes hash-chained ChangeLog entries and verifies chain integrity.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from audit_engine.errors import Conflict
from audit_engine.models.changelog import ActorType, ChangeLog, ChangeLogHead

logger = logging.getLogger(__name__)


class AuditTrailService:
    """
    Audit Trail Service.

    Maintains an immutable, tamper-evident change log per company.
    Entries join the caller's transaction; they commit or roll back
    with the change they describe.
    """

    def __init__(self, session: Session):
        self.session = session

    def log_change(
        self,
        company_id: str,
        actor_id: Optional[str],
        action: str,
        entity_type: str,
        entity_id: str,
        before: Optional[Dict[str, Any]] = None,
        after: Optional[Dict[str, Any]] = None,
        actor_type: ActorType = ActorType.COMPANY_USER,
    ) -> ChangeLog:
        """
        Append a change log entry.

        The company's chain head is locked first; a second writer for the
        same company waits for the first to commit and then continues
        from its entry.
        """
        head = self._lock_head(company_id)

        entry = ChangeLog(
            company_id=company_id,
            sequence=head.last_sequence + 1,
            actor_type=actor_type.value,
            actor_id=actor_id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            before_json=before,
            after_json=after,
            previous_hash=head.last_hash,
        )
        entry.entry_hash = entry.calculate_hash(head.last_hash)

        try:
            with self.session.begin_nested():
                self.session.add(entry)
                head.last_sequence = entry.sequence
                head.last_hash = entry.entry_hash
        except IntegrityError:
            logger.warning(f"Change log for company {company_id} advanced past "
                           f"sequence {entry.sequence - 1}")
            raise Conflict("Change log advanced concurrently; reload and retry",
                           {'company_id': company_id})

        logger.info(f"Audit: {actor_id} {action} {entity_type} {entity_id}")
        return entry

    def _lock_head(self, company_id: str) -> ChangeLogHead:
        head = ChangeLogHead.lock_for_company(self.session, company_id)
        if head is not None:
            return head

        # First entry for the company, or a chain written before heads existed
        previous = ChangeLog.last_for_company(self.session, company_id)
        head = ChangeLogHead(
            company_id=company_id,
            last_sequence=previous.sequence if previous else 0,
            last_hash=previous.entry_hash if previous else '',
        )
        try:
            with self.session.begin_nested():
                self.session.add(head)
        except IntegrityError:
            raise Conflict("Change log started concurrently; reload and retry",
                           {'company_id': company_id})
        return head

    def get_entity_history(self, company_id: str, entity_id: str) -> List[ChangeLog]:
        return self.session.query(ChangeLog).filter(
            ChangeLog.company_id == company_id,
            ChangeLog.entity_id == entity_id
        ).order_by(ChangeLog.sequence).all()

    def verify_chain(self, company_id: str) -> Dict[str, Any]:
        """Verify the integrity of a company's change log chain."""
        entries = self.session.query(ChangeLog).filter(
            ChangeLog.company_id == company_id
        ).order_by(ChangeLog.sequence).all()

        errors = []
        previous_hash = ""

        for entry in entries:
            if entry.previous_hash != previous_hash:
                errors.append({
                    'sequence': entry.sequence,
                    'error': 'Chain broken - previous hash mismatch',
                })
            if entry.calculate_hash(entry.previous_hash) != entry.entry_hash:
                errors.append({
                    'sequence': entry.sequence,
                    'error': 'Entry hash mismatch - possible tampering',
                })
            previous_hash = entry.entry_hash

        return {
            'valid': len(errors) == 0,
            'entries_checked': len(entries),
            'errors': errors,
        }
