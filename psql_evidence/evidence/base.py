from __future__ import annotations
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

STATUS_SATISFIED = "satisfied"
STATUS_NOT_SATISFIED = "not-satisfied"

SUBJECT_COMPONENT = "component"
SUBJECT_INVENTORY_ITEM = "inventory-item"


def _jsonable(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


class _Serializable:
    def to_dict(self) -> Dict[str, Any]:
        return _jsonable(asdict(self))


# ---------- Provenance ----------
@dataclass(frozen=True)
class Link:
    href: str
    text: str = ""
    rel: str = ""


@dataclass(frozen=True)
class OriginActor:
    title: str
    type: str  # assessment-platform / tool
    links: Tuple[Link, ...] = ()


@dataclass(frozen=True)
class Step:
    title: str
    description: str
    remarks: str = ""


@dataclass(frozen=True)
class Activity:
    title: str
    description: str
    steps: Tuple[Step, ...] = ()


@dataclass(frozen=True)
class Subject:
    type: str  # component / inventory-item
    identifier: str
    title: str = ""
    remarks: str = ""


@dataclass(frozen=True)
class Component:
    identifier: str
    title: str
    description: str = ""
    purpose: str = ""


@dataclass(frozen=True)
class Property:
    name: str
    value: str


@dataclass(frozen=True)
class InventoryItem:
    identifier: str
    type: str
    title: str
    props: Tuple[Property, ...] = ()


@dataclass(frozen=True)
class ProvenanceBundle(_Serializable):
    actors: Tuple[OriginActor, ...] = ()
    components: Tuple[Component, ...] = ()
    subjects: Tuple[Subject, ...] = ()
    inventory: Tuple[InventoryItem, ...] = ()
    activities: Tuple[Activity, ...] = ()


# ---------- Evidence ----------
@dataclass(frozen=True)
class RelevantEvidence:
    description: str


@dataclass
class Observation(_Serializable):
    identifier: str
    uuid: str
    title: str
    description: str
    collected: datetime
    expires: datetime
    origins: Tuple[OriginActor, ...] = ()
    subjects: Tuple[Subject, ...] = ()
    activities: Tuple[Activity, ...] = ()
    components: Tuple[Component, ...] = ()
    inventory: Tuple[InventoryItem, ...] = ()
    relevant_evidence: List[RelevantEvidence] = field(default_factory=list)
    labels: Dict[str, str] = field(default_factory=dict)


@dataclass
class Finding(_Serializable):
    identifier: str
    uuid: str
    title: str
    description: str
    status: str  # satisfied / not-satisfied
    remarks: str = ""
    related_observations: List[str] = field(default_factory=list)
    origins: Tuple[OriginActor, ...] = ()
    subjects: Tuple[Subject, ...] = ()
    activities: Tuple[Activity, ...] = ()
    components: Tuple[Component, ...] = ()
    inventory: Tuple[InventoryItem, ...] = ()
    labels: Dict[str, str] = field(default_factory=dict)


@dataclass
class Risk(_Serializable):
    title: str
    description: str
    statement: str
    links: List[Link] = field(default_factory=list)


@dataclass
class LogEntry:
    title: str
    description: str
    start: datetime
    end: datetime


@dataclass
class AssessmentResult(_Serializable):
    """Everything one policy produced for one server."""
    title: str
    policy_path: str
    start: datetime
    end: Optional[datetime] = None
    stream_uuid: str = ""
    labels: Dict[str, str] = field(default_factory=dict)
    observations: List[Observation] = field(default_factory=list)
    findings: List[Finding] = field(default_factory=list)
    risks: List[Risk] = field(default_factory=list)
    logs: List[LogEntry] = field(default_factory=list)
