from __future__ import annotations
import logging
import threading
from collections import Counter
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from azure.core.exceptions import AzureError

from .azure.clients import build_credential, build_postgres_client
from .azure.normalizer import normalize_server
from .azure.paginator import ServerPaginator
from .config import Settings
from .errors import CredentialError, EvidenceError, NormalizationError, PersistenceError, PolicyEvaluationError, RunCancelledError
from .evidence.assembler import EvidenceAssembler
from .evidence.provenance import ProvenanceBuilder
from .policy.base import PolicyEvaluator
from .policy.opa import OpaPolicyEvaluator
from .sinks.base import EvidenceSink
from .utils.logging_utils import exc_to_text

LOGGER = logging.getLogger(__name__)


class ExecutionStatus(str, Enum):
    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"


class RunState(str, Enum):
    COLLECTING = "collecting"
    EVALUATING = "evaluating"
    REPORTING = "reporting"
    DONE = "done"


@dataclass(frozen=True)
class ErrorRecord:
    kind: str
    message: str
    context: Dict[str, str] = field(default_factory=dict)

    def __str__(self) -> str:
        where = ", ".join(f"{k}={v}" for k, v in sorted(self.context.items()))
        return f"[{self.kind}] {self.message}" + (f" ({where})" if where else "")


@dataclass
class RunResult:
    status: ExecutionStatus = ExecutionStatus.SUCCESS
    errors: List[ErrorRecord] = field(default_factory=list)
    records: int = 0
    observations: int = 0
    findings: int = 0

    @property
    def error(self) -> Optional[str]:
        if not self.errors:
            return None
        return "\n".join(str(e) for e in self.errors)

    def counts_by_kind(self) -> Dict[str, int]:
        return dict(Counter(e.kind for e in self.errors))

    def record_error(self, error: EvidenceError, **context: str) -> None:
        self.errors.append(ErrorRecord(kind=error.kind, message=str(error), context={**error.context, **context}))
        self.status = ExecutionStatus.FAILURE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "records": self.records,
            "observations": self.observations,
            "findings": self.findings,
            "error_count": len(self.errors),
            "errors_by_kind": self.counts_by_kind(),
            "errors": [str(e) for e in self.errors],
        }


class EvidenceRunner:
    """Drives pages -> records -> policy paths and reports evidence as it goes.

    Only a listing failure (or cancellation) ends the run early; every other
    failure is recorded against the record or policy it belongs to and the loop
    moves on. Evidence already sent stays sent.
    """

    def __init__(
        self,
        paginator: Iterable,
        assembler: EvidenceAssembler,
        provenance: ProvenanceBuilder,
        sink: EvidenceSink,
        *,
        cancel_event: Optional[threading.Event] = None,
    ):
        self.paginator = paginator
        self.assembler = assembler
        self.provenance = provenance
        self.sink = sink
        self.cancel_event = cancel_event
        self.state = RunState.DONE

    def run(self, policy_paths: Iterable[str]) -> RunResult:
        policy_paths = list(policy_paths)
        result = RunResult()
        self._enter(RunState.COLLECTING)

        for server, err in self.paginator:
            if err is not None:
                self._fail(result, err)
                break

            try:
                record = normalize_server(server)
            except NormalizationError as e:
                self._fail(result, e)
                continue
            result.records += 1
            bundle = self.provenance.for_record(record)

            if not self._evaluate_record(record, bundle, policy_paths, result):
                break
            self._enter(RunState.COLLECTING)

        self._enter(RunState.DONE)
        LOGGER.info("run finished: status=%s records=%d observations=%d findings=%d errors=%d",
                    result.status.value, result.records, result.observations, result.findings, len(result.errors))
        return result

    def _evaluate_record(self, record, bundle, policy_paths: List[str], result: RunResult) -> bool:
        """Returns False when the run was cancelled."""
        for policy_path in policy_paths:
            if self.cancel_event is not None and self.cancel_event.is_set():
                self._fail(result, RunCancelledError(), **{"instance-id": record.instance_id})
                return False

            self._enter(RunState.EVALUATING)
            LOGGER.debug("evaluating instance %s with policy %s", record.instance_id, policy_path)
            try:
                assessment, errors = self.assembler.assemble(
                    record, policy_path, self.provenance.for_policy(bundle, policy_path)
                )
            except RunCancelledError as e:
                self._fail(result, e, **{"instance-id": record.instance_id, "policy-path": policy_path})
                return False
            except PolicyEvaluationError as e:
                self._fail(result, e, **{"instance-id": record.instance_id, "policy-path": policy_path})
                continue
            for e in errors:
                result.record_error(e)

            self._enter(RunState.REPORTING)
            try:
                self.sink.create_observations(assessment.observations)
                result.observations += len(assessment.observations)
                self.sink.create_findings(assessment.findings)
                result.findings += len(assessment.findings)
                if assessment.stream_uuid:
                    self.sink.create_result(assessment)
                else:
                    LOGGER.warning("not sending result for %s on %s: no stream identifier",
                                   policy_path, record.instance_id)
            except PersistenceError as e:
                self._fail(result, e, **{"instance-id": record.instance_id, "policy-path": policy_path})
        return True

    def _enter(self, state: RunState) -> None:
        if state != self.state:
            LOGGER.debug("run state %s -> %s", self.state.value, state.value)
        self.state = state

    def _fail(self, result: RunResult, error: EvidenceError, **context: str) -> None:
        LOGGER.error("%s error: %s %s", error.kind, error, {**error.context, **context})
        LOGGER.debug(exc_to_text(error))
        result.record_error(error, **context)


def run_evaluation(
    settings: Settings,
    *,
    sink: EvidenceSink,
    evaluator: Optional[PolicyEvaluator] = None,
    credential=None,
    client=None,
    cancel_event: Optional[threading.Event] = None,
) -> RunResult:
    """Build the Azure client and pipeline from settings and run one evaluation."""
    if client is None:
        try:
            if credential is None:
                credential = build_credential(
                    settings.auth_mode, settings.tenant_id, settings.client_id, settings.client_secret()
                )
            LOGGER.debug("Azure credentials obtained successfully")
            client = build_postgres_client(credential, settings.subscription_id)
        except (ValueError, AzureError) as e:
            error = CredentialError(f"unable to create Azure PostgreSQL client: {e}",
                                    {"subscription_id": settings.subscription_id})
            LOGGER.error("%s", error)
            result = RunResult()
            result.record_error(error)
            return result
        LOGGER.debug("Azure PostgreSQL client created successfully")

    assembler = EvidenceAssembler(
        evaluator or OpaPolicyEvaluator(settings.opa_binary, settings.opa_timeout, cancel_event=cancel_event),
        retention=timedelta(hours=settings.evidence_retention_hours),
        finding_identity=settings.finding_identity,
    )
    runner = EvidenceRunner(
        ServerPaginator(client, cancel_event=cancel_event),
        assembler,
        ProvenanceBuilder(),
        sink,
        cancel_event=cancel_event,
    )
    return runner.run(settings.policy_paths)
