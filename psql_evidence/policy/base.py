from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, TYPE_CHECKING

if TYPE_CHECKING:
    from ..azure.normalizer import ResourceRecord

POLICY_NAMESPACE = "data.compliance_plugin"


@dataclass(frozen=True)
class Policy:
    package: str
    file: str = ""

    @property
    def pure_package(self) -> str:
        return self.package[len("data."):] if self.package.startswith("data.") else self.package


@dataclass(frozen=True)
class Violation:
    title: str
    description: str = ""
    remarks: str = ""


@dataclass(frozen=True)
class PolicyLink:
    text: str
    url: str


@dataclass(frozen=True)
class PolicyRisk:
    title: str
    description: str = ""
    statement: str = ""
    links: List[PolicyLink] = field(default_factory=list)


@dataclass(frozen=True)
class PolicyResult:
    policy: Policy
    violations: List[Violation] = field(default_factory=list)
    risks: List[PolicyRisk] = field(default_factory=list)


class PolicyEvaluator(ABC):
    """Compiles and executes a policy bundle against one record."""

    @abstractmethod
    def evaluate(self, policy_path: str, record: "ResourceRecord") -> List[PolicyResult]:
        raise NotImplementedError
