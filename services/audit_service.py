"""
Audit Service — read helpers over the QA audit ledger.
"""

from typing import Optional

from storage.models import AuditKind
from storage.repository import AuditLedger


class AuditService:

    def __init__(self, ledger: AuditLedger):
        self._ledger = ledger

    def get_trail(
        self, assessment_id: str, kind: Optional[str] = None
    ) -> list[dict]:
        """Records for one assessment, oldest first; optionally one kind only."""
        if kind is not None:
            return self._ledger.list_kind(kind, assessment_id)
        return self._ledger.list_for_assessment(assessment_id)

    def summarize(self, assessment_id: str) -> dict[str, int]:
        """Record count per kind, e.g. ``{"approval": 2, "rejection": 0, …}``."""
        counts = {kind.value: 0 for kind in AuditKind}
        for rec in self._ledger.list_for_assessment(assessment_id):
            counts[rec["kind"]] += 1
        return counts
