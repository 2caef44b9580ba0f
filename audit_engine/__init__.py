"""
Audit Engine

Audit lifecycle and compliance scoring engine: audit status state machine,
indicator scoring, findings register, evidence review and document
checklist reviews with suggested findings.
"""

__version__ = '1.0.0'
