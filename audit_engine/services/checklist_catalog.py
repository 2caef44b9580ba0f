"""
Checklist Catalogue

Document quality checklists per document type. Seeding is idempotent per
(document_type, version): bump CHECKLIST_VERSION to publish a revised set
alongside the old one.
"""

import logging
from typing import List

from sqlalchemy.orm import Session

from audit_engine.models.document_review import (
    ChecklistSection, DocumentChecklistItem, DocumentChecklistTemplate
)

logger = logging.getLogger(__name__)

CHECKLIST_VERSION = 1

# (item_key, item_text, section, is_critical)
CHECKLIST_TEMPLATES = [
    {
        "document_type": "POLICY",
        "template_name": "Policy Document Checklist",
        "description": "Review checklist for organisational policy documents",
        "items": [
            ("POL_H1", "Document has a clear title and version number", "HYGIENE", False),
            ("POL_H2", "Document date is within review period (typically 2 years)", "HYGIENE", False),
            ("POL_H3", "Approval signature or authorisation present", "HYGIENE", False),
            ("POL_H4", "Document is branded/on letterhead", "HYGIENE", False),
            ("POL_I1", "Policy scope and purpose clearly defined", "IMPLEMENTATION", False),
            ("POL_I2", "Roles and responsibilities assigned", "IMPLEMENTATION", False),
            ("POL_I3", "References relevant legislation or standards", "IMPLEMENTATION", False),
            ("POL_I4", "Review schedule documented", "IMPLEMENTATION", False),
            ("POL_C1", "Content aligns with NDIS Practice Standards", "CRITICAL", True),
            ("POL_C2", "No conflicting or outdated information", "CRITICAL", True),
        ],
    },
    {
        "document_type": "PROCEDURE",
        "template_name": "Procedure Document Checklist",
        "description": "Review checklist for operational procedure documents",
        "items": [
            ("PROC_H1", "Document has clear title and version", "HYGIENE", False),
            ("PROC_H2", "Date is current (within review period)", "HYGIENE", False),
            ("PROC_H3", "Author/owner identified", "HYGIENE", False),
            ("PROC_I1", "Step-by-step instructions provided", "IMPLEMENTATION", False),
            ("PROC_I2", "Responsible parties for each step identified", "IMPLEMENTATION", False),
            ("PROC_I3", "Links to related policies or forms", "IMPLEMENTATION", False),
            ("PROC_I4", "Escalation pathway defined where applicable", "IMPLEMENTATION", False),
            ("PROC_C1", "Procedure aligns with parent policy", "CRITICAL", True),
            ("PROC_C2", "Critical safety steps clearly identified", "CRITICAL", True),
        ],
    },
    {
        "document_type": "TRAINING_RECORD",
        "template_name": "Training Record Checklist",
        "description": "Review checklist for staff training and certification records",
        "items": [
            ("TRN_H1", "Staff member name clearly identified", "HYGIENE", False),
            ("TRN_H2", "Training date recorded", "HYGIENE", False),
            ("TRN_H3", "Training provider/organisation named", "HYGIENE", False),
            ("TRN_I1", "Training topic/module specified", "IMPLEMENTATION", False),
            ("TRN_I2", "Completion evidence (certificate, sign-off)", "IMPLEMENTATION", False),
            ("TRN_I3", "Expiry date noted if applicable", "IMPLEMENTATION", False),
            ("TRN_C1", "Training is current (not expired)", "CRITICAL", True),
            ("TRN_C2", "Training relevant to staff role", "CRITICAL", True),
        ],
    },
    {
        "document_type": "RISK_ASSESSMENT",
        "template_name": "Risk Assessment Checklist",
        "description": "Review checklist for risk assessment documents",
        "items": [
            ("RSK_H1", "Assessment date recorded", "HYGIENE", False),
            ("RSK_H2", "Assessor identified", "HYGIENE", False),
            ("RSK_H3", "Subject/scope of assessment clear", "HYGIENE", False),
            ("RSK_I1", "Risks identified and described", "IMPLEMENTATION", False),
            ("RSK_I2", "Risk ratings assigned (likelihood x impact)", "IMPLEMENTATION", False),
            ("RSK_I3", "Control measures documented", "IMPLEMENTATION", False),
            ("RSK_I4", "Review date scheduled", "IMPLEMENTATION", False),
            ("RSK_C1", "High/extreme risks have documented controls", "CRITICAL", True),
            ("RSK_C2", "Assessment is current (reviewed within 12 months)", "CRITICAL", True),
        ],
    },
    {
        "document_type": "CARE_PLAN",
        "template_name": "Care/Support Plan Checklist",
        "description": "Review checklist for participant care and support plans",
        "items": [
            ("CP_H1", "Participant name and identifiers present", "HYGIENE", False),
            ("CP_H2", "Plan date clearly shown", "HYGIENE", False),
            ("CP_H3", "Plan author/coordinator identified", "HYGIENE", False),
            ("CP_I1", "Goals and outcomes documented", "IMPLEMENTATION", False),
            ("CP_I2", "Support strategies detailed", "IMPLEMENTATION", False),
            ("CP_I3", "Participant preferences noted", "IMPLEMENTATION", False),
            ("CP_I4", "Review schedule included", "IMPLEMENTATION", False),
            ("CP_C1", "Participant consent/signature obtained", "CRITICAL", True),
            ("CP_C2", "Plan reflects current participant needs", "CRITICAL", True),
            ("CP_C3", "Emergency contacts/protocols documented", "CRITICAL", True),
        ],
    },
    {
        "document_type": "QUALIFICATION",
        "template_name": "Qualification/Credential Checklist",
        "description": "Review checklist for staff qualifications and credentials",
        "items": [
            ("QUAL_H1", "Staff member name matches", "HYGIENE", False),
            ("QUAL_H2", "Issuing institution identified", "HYGIENE", False),
            ("QUAL_H3", "Issue date present", "HYGIENE", False),
            ("QUAL_I1", "Qualification title/type specified", "IMPLEMENTATION", False),
            ("QUAL_I2", "Registration/certification number if applicable", "IMPLEMENTATION", False),
            ("QUAL_C1", "Qualification is current (not expired)", "CRITICAL", True),
            ("QUAL_C2", "Qualification relevant to role requirements", "CRITICAL", True),
        ],
    },
    {
        "document_type": "WWCC",
        "template_name": "WWCC/Police Check Checklist",
        "description": "Review checklist for Working with Children and police checks",
        "items": [
            ("WW_H1", "Person name matches employee records", "HYGIENE", False),
            ("WW_H2", "Check date recorded", "HYGIENE", False),
            ("WW_H3", "Document is legible", "HYGIENE", False),
            ("WW_I1", "Card/reference number visible", "IMPLEMENTATION", False),
            ("WW_I2", "Issuing authority identified", "IMPLEMENTATION", False),
            ("WW_C1", "Check is current (not expired)", "CRITICAL", True),
            ("WW_C2", "Status is cleared/valid", "CRITICAL", True),
        ],
    },
    {
        "document_type": "SERVICE_AGREEMENT",
        "template_name": "Service Agreement Checklist",
        "description": "Review checklist for participant service agreements",
        "items": [
            ("SA_H1", "Participant name and details present", "HYGIENE", False),
            ("SA_H2", "Agreement date recorded", "HYGIENE", False),
            ("SA_H3", "Provider details included", "HYGIENE", False),
            ("SA_I1", "Services to be provided clearly described", "IMPLEMENTATION", False),
            ("SA_I2", "Pricing/fees documented", "IMPLEMENTATION", False),
            ("SA_I3", "Cancellation policy included", "IMPLEMENTATION", False),
            ("SA_I4", "Complaints process referenced", "IMPLEMENTATION", False),
            ("SA_C1", "Participant signature obtained", "CRITICAL", True),
            ("SA_C2", "Agreement is current (not expired)", "CRITICAL", True),
        ],
    },
    {
        "document_type": "INCIDENT_REPORT",
        "template_name": "Incident Report Checklist",
        "description": "Review checklist for incident and accident reports",
        "items": [
            ("INC_H1", "Incident date and time recorded", "HYGIENE", False),
            ("INC_H2", "Location specified", "HYGIENE", False),
            ("INC_H3", "Reporter identified", "HYGIENE", False),
            ("INC_I1", "Description of what occurred", "IMPLEMENTATION", False),
            ("INC_I2", "Persons involved identified", "IMPLEMENTATION", False),
            ("INC_I3", "Immediate actions taken documented", "IMPLEMENTATION", False),
            ("INC_I4", "Witnesses noted if applicable", "IMPLEMENTATION", False),
            ("INC_C1", "Report submitted within required timeframe", "CRITICAL", True),
            ("INC_C2", "Reportable incident notified to NDIS Commission if required", "CRITICAL", True),
        ],
    },
    {
        "document_type": "COMPLAINT_RECORD",
        "template_name": "Complaint Record Checklist",
        "description": "Review checklist for complaint and feedback records",
        "items": [
            ("CMP_H1", "Complaint date received recorded", "HYGIENE", False),
            ("CMP_H2", "Complainant identified (or noted as anonymous)", "HYGIENE", False),
            ("CMP_H3", "Receiving staff member noted", "HYGIENE", False),
            ("CMP_I1", "Nature of complaint described", "IMPLEMENTATION", False),
            ("CMP_I2", "Investigation steps documented", "IMPLEMENTATION", False),
            ("CMP_I3", "Outcome/resolution recorded", "IMPLEMENTATION", False),
            ("CMP_C1", "Acknowledgement provided within required timeframe", "CRITICAL", True),
            ("CMP_C2", "Resolution communicated to complainant", "CRITICAL", True),
        ],
    },
]


def seed_checklist_templates(session: Session, version: int = CHECKLIST_VERSION) -> List[DocumentChecklistTemplate]:
    """Create any missing checklist templates. Returns the ones created."""
    existing = {
        row[0] for row in session.query(DocumentChecklistTemplate.document_type).filter(
            DocumentChecklistTemplate.version == version
        )
    }

    created = []
    for definition in CHECKLIST_TEMPLATES:
        if definition['document_type'] in existing:
            continue

        template = DocumentChecklistTemplate(
            document_type=definition['document_type'],
            template_name=definition['template_name'],
            description=definition['description'],
            version=version,
            is_active=True,
        )
        session.add(template)
        session.flush()

        for sort_order, (key, text, section, is_critical) in enumerate(definition['items'], 1):
            session.add(DocumentChecklistItem(
                template_id=template.id,
                item_key=key,
                item_text=text,
                section=ChecklistSection(section).value,
                is_critical=is_critical,
                sort_order=sort_order,
            ))
        created.append(template)

    session.flush()
    if created:
        logger.info(f"Seeded {len(created)} document checklist templates (v{version})")
    else:
        logger.debug(f"Document checklists v{version} already seeded")
    return created
