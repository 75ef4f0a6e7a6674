from __future__ import annotations
from typing import Dict, Optional


class EvidenceError(Exception):
    """Base class for every error the evidence pipeline records."""
    kind: str = "evidence"

    def __init__(self, message: str, context: Optional[Dict[str, str]] = None):
        super().__init__(message)
        self.context: Dict[str, str] = dict(context or {})


class CredentialError(EvidenceError):
    kind = "credential"


class PaginationError(EvidenceError):
    kind = "pagination"


class NoInstancesFoundError(PaginationError):
    def __init__(self, context: Optional[Dict[str, str]] = None):
        super().__init__("no instances found", context)


class NormalizationError(EvidenceError):
    kind = "normalization"


class MissingFieldError(NormalizationError):
    def __init__(self, field: str, context: Optional[Dict[str, str]] = None):
        super().__init__(f"server record is missing mandatory field '{field}'", context)
        self.field = field


class PolicyEvaluationError(EvidenceError):
    kind = "policy-evaluation"


class SeedingError(EvidenceError):
    kind = "seeding"


class PersistenceError(EvidenceError):
    kind = "persistence"


class RunCancelledError(EvidenceError):
    kind = "cancelled"

    def __init__(self, context: Optional[Dict[str, str]] = None):
        super().__init__("evaluation run was cancelled", context)
