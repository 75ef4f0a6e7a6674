from __future__ import annotations
from abc import ABC, abstractmethod
from typing import List

from ..evidence.base import AssessmentResult, Finding, Observation


class EvidenceSink(ABC):
    """Persists evidence. Implementations raise PersistenceError on failure."""

    @abstractmethod
    def create_observations(self, observations: List[Observation]) -> None:
        raise NotImplementedError

    @abstractmethod
    def create_findings(self, findings: List[Finding]) -> None:
        raise NotImplementedError

    @abstractmethod
    def create_result(self, result: AssessmentResult) -> None:
        raise NotImplementedError
