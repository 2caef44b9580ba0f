"""
Pytest configuration and fixtures for the audit engine test suite.
"""

from datetime import date
from types import SimpleNamespace

import pytest

from audit_engine.app import create_app
from audit_engine.models import (
    SessionLocal, drop_db,
    SupportCategory, SupportLineItem, CompanyServiceSelection,
    AuditTemplate, TemplateIndicator, Rating,
)
from audit_engine.services import (
    Actor, Role, AuditLifecycleService, ScopeService, ResponseService,
    FindingService, EvidenceService, DocumentReviewService, SubmittedItem,
    seed_checklist_templates,
)

COMPANY_ID = 'company-0001'
OTHER_COMPANY_ID = 'company-0002'

NC_COMMENT = 'missing required signage onsite'


# ============================================================================
# Application / Database Fixtures
# ============================================================================

@pytest.fixture
def app():
    """Create test Flask application on a fresh in-memory database."""
    app = create_app('testing')
    app.config['TESTING'] = True
    yield app
    drop_db()


@pytest.fixture
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture
def session(app):
    """Database session for service-level tests."""
    session = SessionLocal()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def catalogue(app):
    """
    Committed reference data for COMPANY_ID.

    Two line items the company delivers plus one it does not, an active
    template with three indicators, default domains and the document
    checklists.
    """
    session = SessionLocal()
    try:
        category = SupportCategory(category_key='daily_living',
                                   category_label='Assistance with Daily Life', sort_order=1)
        session.add(category)
        session.flush()

        items = [
            SupportLineItem(category_id=category.id, item_code=code, item_label=label,
                            sort_order=index)
            for index, (code, label) in enumerate([
                ('01_011_0107_1_1', 'Assistance With Self-Care Activities'),
                ('01_013_0107_1_1', 'Assistance With Self-Care Activities - Night'),
                ('01_019_0120_1_1', 'House Cleaning And Other Household Activities'),
            ])
        ]
        session.add_all(items)
        session.flush()

        for item in items[:2]:
            session.add(CompanyServiceSelection(company_id=COMPANY_ID, line_item_id=item.id))

        domains = ScopeService(session).ensure_default_domains(COMPANY_ID)

        template = AuditTemplate(company_id=COMPANY_ID, name='Core Module',
                                 description='Core practice standard indicators')
        inactive = AuditTemplate(company_id=COMPANY_ID, name='Retired Module', is_active=False)
        session.add_all([template, inactive])
        session.flush()

        indicators = [
            TemplateIndicator(template_id=template.id, domain_id=domains[0].id,
                              indicator_text=text, risk_level='HIGH', sort_order=index)
            for index, text in enumerate([
                'Safety signage is displayed at every site',
                'Staff screening checks are current',
                'Incident register is maintained',
            ])
        ]
        session.add_all(indicators)

        seed_checklist_templates(session)
        session.commit()

        yield SimpleNamespace(
            line_item_ids=[item.id for item in items[:2]],
            unselected_line_item_id=items[2].id,
            domain_ids=[d.id for d in domains],
            template_id=template.id,
            inactive_template_id=inactive.id,
            indicator_ids=[i.id for i in indicators],
        )
    finally:
        session.close()


# ============================================================================
# Actor Fixtures
# ============================================================================

@pytest.fixture
def admin():
    return Actor(user_id='user-admin', company_id=COMPANY_ID, role=Role.COMPANY_ADMIN)


@pytest.fixture
def auditor():
    return Actor(user_id='user-auditor', company_id=COMPANY_ID, role=Role.AUDITOR)


@pytest.fixture
def reviewer():
    return Actor(user_id='user-reviewer', company_id=COMPANY_ID, role=Role.REVIEWER)


@pytest.fixture
def staff():
    return Actor(user_id='user-staff', company_id=COMPANY_ID, role=Role.STAFF_READ_ONLY)


@pytest.fixture
def outsider():
    return Actor(user_id='user-outsider', company_id=OTHER_COMPANY_ID, role=Role.COMPANY_ADMIN)


def auth_headers(actor: Actor) -> dict:
    """Headers the authentication collaborator would set for ``actor``."""
    return {
        'X-Company-Id': actor.company_id,
        'X-Company-User-Id': actor.user_id,
        'X-Company-Role': actor.role.value,
    }


# ============================================================================
# Workflow Fixtures
# ============================================================================

@pytest.fixture
def lifecycle(session):
    return AuditLifecycleService(session)


@pytest.fixture
def scope(session):
    return ScopeService(session)


@pytest.fixture
def responses(session):
    return ResponseService(session)


@pytest.fixture
def findings(session):
    return FindingService(session)


@pytest.fixture
def evidence(session):
    return EvidenceService(session)


@pytest.fixture
def reviews(session):
    return DocumentReviewService(session)


@pytest.fixture
def draft_audit(lifecycle, auditor, catalogue):
    """A DRAFT internal audit with nothing scoped yet."""
    return lifecycle.create_audit(
        auditor, 'INTERNAL', 'Annual internal audit',
        date(2026, 1, 1), date(2026, 6, 30)
    )


@pytest.fixture
def started_audit(lifecycle, scope, auditor, catalogue, draft_audit):
    """An IN_PROGRESS audit scoped to one line item with the core template."""
    scope.set_scope_line_items(auditor, draft_audit.id, catalogue.line_item_ids[:1])
    scope.select_template(auditor, draft_audit.id, catalogue.template_id)
    return lifecycle.start_audit(auditor, draft_audit.id)


@pytest.fixture
def major_finding(responses, findings, auditor, catalogue, started_audit):
    """An OPEN MAJOR_NC finding raised from the first indicator."""
    responses.record_response(auditor, started_audit.id, catalogue.indicator_ids[0],
                              Rating.MAJOR_NC.value, NC_COMMENT)
    return findings.latest_for_indicator(started_audit.id, catalogue.indicator_ids[0])


def pdf_item(name: str = 'policy.pdf') -> SubmittedItem:
    return SubmittedItem(file_path=f'evidence/{name}', file_name=name,
                         mime_type='application/pdf', file_size_bytes=2048)
