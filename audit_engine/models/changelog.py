"""
Change Log Model

Immutable, tamper-evident record of every engine mutation. Entries are
hash-chained per company: each stores the hash of the entry before it.
"""

import hashlib
import json
from enum import Enum
from typing import Optional

from sqlalchemy import Column, String, Integer, JSON, UniqueConstraint, event

from .base import Base


class ActorType(str, Enum):
    COMPANY_USER = 'company_user'
    EXTERNAL_UPLOADER = 'external_uploader'
    SYSTEM = 'system'


class ChangeLogHead(Base):
    """
    Chain head per company.

    Writers lock this row before appending, so entries for one company
    are sequenced one at a time while other companies proceed.
    """
    __tablename__ = 'change_log_heads'

    company_id = Column(String(36), nullable=False, unique=True)
    last_sequence = Column(Integer, nullable=False, default=0)
    last_hash = Column(String(64), nullable=False, default='')

    @classmethod
    def lock_for_company(cls, session, company_id: str) -> Optional['ChangeLogHead']:
        return session.query(cls).filter(
            cls.company_id == company_id
        ).with_for_update().one_or_none()


class ChangeLog(Base):
    """System change log entry."""
    __tablename__ = 'change_log'
    __table_args__ = (
        UniqueConstraint('company_id', 'sequence', name='uq_change_log_sequence'),
    )

    company_id = Column(String(36), nullable=False, index=True)
    sequence = Column(Integer, nullable=False)

    actor_type = Column(String(30), nullable=False)
    actor_id = Column(String(255))
    action = Column(String(100), nullable=False, index=True)
    entity_type = Column(String(50), nullable=False)
    entity_id = Column(String(36), nullable=False, index=True)
    before_json = Column(JSON)
    after_json = Column(JSON)

    entry_hash = Column(String(64), nullable=False)
    previous_hash = Column(String(64), nullable=False, default='')

    def __repr__(self):
        return f"<ChangeLog({self.action} {self.entity_type} {self.entity_id})>"

    def calculate_hash(self, previous_hash: str = "") -> str:
        """Calculate entry hash for chain integrity."""
        data = (
            f"{self.company_id}:{self.sequence}:{self.actor_type}:{self.actor_id}:"
            f"{self.action}:{self.entity_type}:{self.entity_id}:"
            f"{json.dumps(self.before_json, sort_keys=True, default=str)}:"
            f"{json.dumps(self.after_json, sort_keys=True, default=str)}:"
            f"{previous_hash}"
        )
        return hashlib.sha256(data.encode()).hexdigest()

    @classmethod
    def last_for_company(cls, session, company_id: str) -> Optional['ChangeLog']:
        return session.query(cls).filter(
            cls.company_id == company_id
        ).order_by(cls.sequence.desc()).first()


@event.listens_for(ChangeLog, 'before_update')
def _refuse_changelog_update(mapper, connection, target):
    raise ValueError("Change log entries are immutable")


@event.listens_for(ChangeLog, 'before_delete')
def _refuse_changelog_delete(mapper, connection, target):
    raise ValueError("Change log entries are immutable")
