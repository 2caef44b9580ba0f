"""Initial audit engine schema

Revision ID: 20261017_000001
Revises:
Create Date: 2026-10-17 00:00:01

Tables:
- Catalogue: support categories/line items, service selections, domains, templates
- Audits, scope, indicator responses
- Findings and finding activity
- Evidence requests and items
- Document checklists, reviews, suggested findings
- Change log
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = '20261017_000001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _base_columns():
    return [
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime()),
    ]


def upgrade() -> None:
    """Create audit engine tables."""

    # =========================================================================
    # CATALOGUE
    # =========================================================================
    op.create_table(
        'support_categories',
        *_base_columns(),
        sa.Column('category_key', sa.String(100), nullable=False, unique=True),
        sa.Column('category_label', sa.String(255), nullable=False),
        sa.Column('sort_order', sa.Integer()),
    )

    op.create_table(
        'support_line_items',
        *_base_columns(),
        sa.Column('category_id', sa.String(36), sa.ForeignKey('support_categories.id'),
                  nullable=False, index=True),
        sa.Column('item_code', sa.String(100), nullable=False, unique=True),
        sa.Column('item_label', sa.String(255), nullable=False),
        sa.Column('is_active', sa.Boolean()),
        sa.Column('sort_order', sa.Integer()),
    )

    op.create_table(
        'company_service_selections',
        *_base_columns(),
        sa.Column('company_id', sa.String(36), nullable=False, index=True),
        sa.Column('line_item_id', sa.String(36), sa.ForeignKey('support_line_items.id'),
                  nullable=False),
        sa.UniqueConstraint('company_id', 'line_item_id', name='uq_company_service_line_item'),
    )

    op.create_table(
        'audit_domains',
        *_base_columns(),
        sa.Column('company_id', sa.String(36), nullable=False, index=True),
        sa.Column('code', sa.String(50), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text()),
        sa.Column('is_enabled_by_default', sa.Boolean()),
        sa.UniqueConstraint('company_id', 'code', name='uq_audit_domain_code'),
    )

    op.create_table(
        'audit_templates',
        *_base_columns(),
        sa.Column('company_id', sa.String(36), nullable=False, index=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text()),
        sa.Column('is_active', sa.Boolean()),
    )

    op.create_table(
        'template_indicators',
        *_base_columns(),
        sa.Column('template_id', sa.String(36), sa.ForeignKey('audit_templates.id'),
                  nullable=False, index=True),
        sa.Column('domain_id', sa.String(36), sa.ForeignKey('audit_domains.id')),
        sa.Column('indicator_text', sa.Text(), nullable=False),
        sa.Column('guidance_text', sa.Text()),
        sa.Column('risk_level', sa.String(20)),
        sa.Column('sort_order', sa.Integer()),
    )

    # =========================================================================
    # AUDITS
    # =========================================================================
    op.create_table(
        'audits',
        *_base_columns(),
        sa.Column('company_id', sa.String(36), nullable=False, index=True),
        sa.Column('audit_type', sa.String(20), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text()),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('scope_time_from', sa.Date(), nullable=False),
        sa.Column('scope_time_to', sa.Date(), nullable=False),
        sa.Column('scope_locked', sa.Boolean(), nullable=False),
        sa.Column('template_id', sa.String(36), sa.ForeignKey('audit_templates.id')),
        sa.Column('external_auditor_name', sa.String(255)),
        sa.Column('external_auditor_org', sa.String(255)),
        sa.Column('external_auditor_email', sa.String(255)),
        sa.Column('created_by', sa.String(36), nullable=False),
        sa.Column('started_at', sa.DateTime()),
        sa.Column('submitted_for_review_at', sa.DateTime()),
        sa.Column('review_notes', sa.Text()),
        sa.Column('approved_at', sa.DateTime()),
        sa.Column('approved_by', sa.String(36)),
        sa.Column('close_reason', sa.Text()),
        sa.Column('closed_at', sa.DateTime()),
        sa.Column('closed_by', sa.String(36)),
        sa.Column('reopened_at', sa.DateTime()),
        sa.Column('reopen_reason', sa.Text()),
    )
    op.create_index('ix_audits_company_status', 'audits', ['company_id', 'status'])

    op.create_table(
        'audit_scope_line_items',
        *_base_columns(),
        sa.Column('audit_id', sa.String(36), sa.ForeignKey('audits.id'), nullable=False,
                  index=True),
        sa.Column('line_item_id', sa.String(36), sa.ForeignKey('support_line_items.id'),
                  nullable=False),
        sa.UniqueConstraint('audit_id', 'line_item_id', name='uq_audit_scope_line_item'),
    )

    op.create_table(
        'audit_scope_domains',
        *_base_columns(),
        sa.Column('audit_id', sa.String(36), sa.ForeignKey('audits.id'), nullable=False,
                  index=True),
        sa.Column('domain_id', sa.String(36), sa.ForeignKey('audit_domains.id'), nullable=False),
        sa.Column('is_included', sa.Boolean(), nullable=False),
        sa.UniqueConstraint('audit_id', 'domain_id', name='uq_audit_scope_domain'),
    )

    op.create_table(
        'indicator_responses',
        *_base_columns(),
        sa.Column('company_id', sa.String(36), nullable=False, index=True),
        sa.Column('audit_id', sa.String(36), sa.ForeignKey('audits.id'), nullable=False,
                  index=True),
        sa.Column('template_indicator_id', sa.String(36),
                  sa.ForeignKey('template_indicators.id'), nullable=False),
        sa.Column('rating', sa.String(40), nullable=False),
        sa.Column('comment', sa.Text()),
        sa.Column('score_points', sa.Integer(), nullable=False),
        sa.Column('score_version', sa.String(10), nullable=False),
        sa.Column('status', sa.String(10), nullable=False),
        sa.Column('created_by', sa.String(36), nullable=False),
        sa.Column('updated_by', sa.String(36)),
        sa.Column('review_comment', sa.Text()),
        sa.Column('review_comment_by', sa.String(36)),
        sa.Column('review_comment_at', sa.DateTime()),
        sa.UniqueConstraint('audit_id', 'template_indicator_id',
                            name='uq_response_audit_indicator'),
    )

    # =========================================================================
    # FINDINGS
    # =========================================================================
    op.create_table(
        'findings',
        *_base_columns(),
        sa.Column('company_id', sa.String(36), nullable=False, index=True),
        sa.Column('audit_id', sa.String(36), sa.ForeignKey('audits.id')),
        sa.Column('template_indicator_id', sa.String(36),
                  sa.ForeignKey('template_indicators.id')),
        sa.Column('indicator_response_id', sa.String(36),
                  sa.ForeignKey('indicator_responses.id')),
        sa.Column('source', sa.String(30), nullable=False),
        sa.Column('source_document_review_id', sa.String(36), index=True),
        sa.Column('severity', sa.String(20), nullable=False),
        sa.Column('finding_text', sa.Text(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('owner_id', sa.String(36)),
        sa.Column('due_date', sa.Date()),
        sa.Column('closure_note', sa.Text()),
        sa.Column('closed_at', sa.DateTime()),
        sa.Column('closed_by', sa.String(36)),
        sa.Column('created_by', sa.String(36), nullable=False),
    )
    op.create_index('ix_findings_company_status', 'findings', ['company_id', 'status'])
    op.create_index('ix_findings_audit_indicator', 'findings',
                    ['audit_id', 'template_indicator_id'])

    op.create_table(
        'finding_activities',
        *_base_columns(),
        sa.Column('company_id', sa.String(36), nullable=False, index=True),
        sa.Column('finding_id', sa.String(36), sa.ForeignKey('findings.id'), nullable=False,
                  index=True),
        sa.Column('activity_type', sa.String(30), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('actor_id', sa.String(36)),
    )

    # =========================================================================
    # EVIDENCE
    # =========================================================================
    op.create_table(
        'evidence_requests',
        *_base_columns(),
        sa.Column('company_id', sa.String(36), nullable=False, index=True),
        sa.Column('audit_id', sa.String(36), sa.ForeignKey('audits.id'), index=True),
        sa.Column('finding_id', sa.String(36), sa.ForeignKey('findings.id'), index=True),
        sa.Column('template_indicator_id', sa.String(36),
                  sa.ForeignKey('template_indicators.id')),
        sa.Column('evidence_type', sa.String(40), nullable=False),
        sa.Column('request_note', sa.Text(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('due_date', sa.Date()),
        sa.Column('public_token', sa.String(128), unique=True, index=True),
        sa.Column('requested_by', sa.String(36), nullable=False),
        sa.Column('submitted_at', sa.DateTime()),
        sa.Column('reviewed_by', sa.String(36)),
        sa.Column('reviewed_at', sa.DateTime()),
        sa.Column('review_note', sa.Text()),
    )

    op.create_table(
        'evidence_items',
        *_base_columns(),
        sa.Column('company_id', sa.String(36), nullable=False, index=True),
        sa.Column('evidence_request_id', sa.String(36), sa.ForeignKey('evidence_requests.id'),
                  nullable=False, index=True),
        sa.Column('item_kind', sa.String(10), nullable=False),
        sa.Column('file_path', sa.String(1024)),
        sa.Column('file_name', sa.String(255)),
        sa.Column('mime_type', sa.String(255)),
        sa.Column('file_size_bytes', sa.Integer()),
        sa.Column('external_url', sa.String(2048)),
        sa.Column('note', sa.Text()),
        sa.Column('uploaded_by', sa.String(36)),
        sa.Column('uploader_name', sa.String(255)),
        sa.Column('uploader_email', sa.String(255)),
    )

    # =========================================================================
    # DOCUMENT REVIEW
    # =========================================================================
    op.create_table(
        'document_checklist_templates',
        *_base_columns(),
        sa.Column('document_type', sa.String(40), nullable=False, index=True),
        sa.Column('template_name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text()),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.UniqueConstraint('document_type', 'version', name='uq_checklist_type_version'),
    )

    op.create_table(
        'document_checklist_items',
        *_base_columns(),
        sa.Column('template_id', sa.String(36), sa.ForeignKey('document_checklist_templates.id'),
                  nullable=False, index=True),
        sa.Column('item_key', sa.String(50), nullable=False),
        sa.Column('item_text', sa.Text(), nullable=False),
        sa.Column('section', sa.String(20), nullable=False),
        sa.Column('is_critical', sa.Boolean(), nullable=False),
        sa.Column('sort_order', sa.Integer(), nullable=False),
        sa.UniqueConstraint('template_id', 'item_key', name='uq_checklist_item_key'),
    )

    op.create_table(
        'document_reviews',
        *_base_columns(),
        sa.Column('company_id', sa.String(36), nullable=False, index=True),
        sa.Column('evidence_item_id', sa.String(36), sa.ForeignKey('evidence_items.id'),
                  nullable=False, index=True),
        sa.Column('evidence_request_id', sa.String(36), sa.ForeignKey('evidence_requests.id'),
                  nullable=False),
        sa.Column('audit_id', sa.String(36), sa.ForeignKey('audits.id')),
        sa.Column('checklist_template_id', sa.String(36),
                  sa.ForeignKey('document_checklist_templates.id'), nullable=False),
        sa.Column('responses', sa.JSON(), nullable=False),
        sa.Column('dqs_percent', sa.Integer(), nullable=False),
        sa.Column('critical_failures_count', sa.Integer(), nullable=False),
        sa.Column('needs_manual_review', sa.Boolean(), nullable=False),
        sa.Column('decision', sa.String(10), nullable=False),
        sa.Column('justification', sa.Text()),
        sa.Column('reviewer_id', sa.String(36), nullable=False),
    )

    op.create_table(
        'suggested_findings',
        *_base_columns(),
        sa.Column('company_id', sa.String(36), nullable=False, index=True),
        sa.Column('document_review_id', sa.String(36), sa.ForeignKey('document_reviews.id'),
                  nullable=False),
        sa.Column('evidence_item_id', sa.String(36), sa.ForeignKey('evidence_items.id'),
                  nullable=False, index=True),
        sa.Column('evidence_request_id', sa.String(36), sa.ForeignKey('evidence_requests.id'),
                  nullable=False),
        sa.Column('audit_id', sa.String(36), sa.ForeignKey('audits.id')),
        sa.Column('suggested_type', sa.String(10), nullable=False),
        sa.Column('severity_flag', sa.String(10), nullable=False),
        sa.Column('rationale', sa.Text(), nullable=False),
        sa.Column('status', sa.String(10), nullable=False),
        sa.Column('confirmed_finding_id', sa.String(36), sa.ForeignKey('findings.id')),
        sa.Column('confirmed_finding_type', sa.String(20)),
        sa.Column('confirmation_note', sa.Text()),
        sa.Column('confirmed_by', sa.String(36)),
        sa.Column('confirmed_at', sa.DateTime()),
        sa.Column('dismissed_by', sa.String(36)),
        sa.Column('dismissed_at', sa.DateTime()),
        sa.Column('dismiss_reason', sa.Text()),
        sa.CheckConstraint(
            "status != 'CONFIRMED' OR confirmed_finding_id IS NOT NULL "
            "OR confirmation_note IS NOT NULL",
            name='ck_suggestion_confirmed_has_outcome'
        ),
        sa.CheckConstraint(
            "status != 'DISMISSED' OR dismissed_by IS NOT NULL",
            name='ck_suggestion_dismissed_has_actor'
        ),
    )

    # =========================================================================
    # CHANGE LOG
    # =========================================================================
    op.create_table(
        'change_log',
        *_base_columns(),
        sa.Column('company_id', sa.String(36), nullable=False, index=True),
        sa.Column('sequence', sa.Integer(), nullable=False),
        sa.Column('actor_type', sa.String(30), nullable=False),
        sa.Column('actor_id', sa.String(255)),
        sa.Column('action', sa.String(100), nullable=False, index=True),
        sa.Column('entity_type', sa.String(50), nullable=False),
        sa.Column('entity_id', sa.String(36), nullable=False, index=True),
        sa.Column('before_json', sa.JSON()),
        sa.Column('after_json', sa.JSON()),
        sa.Column('entry_hash', sa.String(64), nullable=False),
        sa.Column('previous_hash', sa.String(64), nullable=False),
        sa.UniqueConstraint('company_id', 'sequence', name='uq_change_log_sequence'),
    )


def downgrade() -> None:
    """Drop audit engine tables."""
    op.drop_table('change_log')
    op.drop_table('suggested_findings')
    op.drop_table('document_reviews')
    op.drop_table('document_checklist_items')
    op.drop_table('document_checklist_templates')
    op.drop_table('evidence_items')
    op.drop_table('evidence_requests')
    op.drop_table('finding_activities')
    op.drop_index('ix_findings_audit_indicator', table_name='findings')
    op.drop_index('ix_findings_company_status', table_name='findings')
    op.drop_table('findings')
    op.drop_table('indicator_responses')
    op.drop_table('audit_scope_domains')
    op.drop_table('audit_scope_line_items')
    op.drop_index('ix_audits_company_status', table_name='audits')
    op.drop_table('audits')
    op.drop_table('template_indicators')
    op.drop_table('audit_templates')
    op.drop_table('audit_domains')
    op.drop_table('company_service_selections')
    op.drop_table('support_line_items')
    op.drop_table('support_categories')
