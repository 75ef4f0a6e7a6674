from __future__ import annotations
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Tuple

from ..azure.normalizer import ResourceRecord
from ..errors import EvidenceError, PolicyEvaluationError, RunCancelledError, SeedingError
from ..policy.base import PolicyEvaluator, PolicyResult
from .base import (
    STATUS_NOT_SATISFIED, STATUS_SATISFIED,
    AssessmentResult, Finding, Link, LogEntry, Observation, ProvenanceBundle, RelevantEvidence, Risk,
)
from .identity import (
    FINDING_IDENTITY_SHARED, RESOURCE_TYPE,
    finding_attributes, observation_attributes, seeded_uuid, stream_attributes,
)

LOGGER = logging.getLogger(__name__)

DEFAULT_RETENTION = timedelta(hours=24)
RESULT_TITLE = "Azure PostgreSQL Flexible Server checks - Azure plugin"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class EvidenceAssembler:
    def __init__(
        self,
        evaluator: PolicyEvaluator,
        *,
        retention: timedelta = DEFAULT_RETENTION,
        clock: Callable[[], datetime] = utc_now,
        finding_identity: str = FINDING_IDENTITY_SHARED,
    ):
        self.evaluator = evaluator
        self.retention = retention
        self.clock = clock
        self.finding_identity = finding_identity

    def assemble(
        self, record: ResourceRecord, policy_path: str, provenance: ProvenanceBundle
    ) -> Tuple[AssessmentResult, List[EvidenceError]]:
        """Evaluate one policy bundle against one record.

        Raises PolicyEvaluationError when the bundle cannot be evaluated; no
        evidence is produced for the pair in that case. Identity failures for a
        single policy result are returned alongside the evidence instead.
        """
        context = {"instance-id": record.instance_id, "policy-path": policy_path}
        try:
            results = self.evaluator.evaluate(policy_path, record)
        except PolicyEvaluationError as e:
            e.context = {**context, **e.context}
            raise
        except RunCancelledError:
            raise
        except Exception as e:
            raise PolicyEvaluationError(f"policy evaluation failed: {e}", context) from e

        collected = self.clock()
        labels = {**record.labels, "_policy": policy_path}
        assessment = AssessmentResult(title=RESULT_TITLE, policy_path=policy_path, start=collected, labels=labels)
        errors: List[EvidenceError] = []

        for result in results:
            try:
                observation, findings = self._evidence_for(record, policy_path, provenance, result, collected)
            except SeedingError as e:
                e.context = {**context, "package": result.policy.package, **e.context}
                LOGGER.error("unable to derive identifiers for %s on %s: %s",
                             result.policy.package, record.instance_id, e)
                errors.append(e)
                continue
            assessment.observations.append(observation)
            assessment.findings.extend(findings)
            assessment.risks.extend(_risks(result))

        try:
            assessment.stream_uuid = str(seeded_uuid(stream_attributes(policy_path)))
        except SeedingError as e:
            e.context = {**context, **e.context}
            LOGGER.error("unable to derive stream identifier for %s: %s", policy_path, e)
            errors.append(e)

        assessment.end = self.clock()
        assessment.logs.append(LogEntry(
            title="PostgreSQL flexible server check",
            description=f"Evaluated {policy_path} against {record.name}",
            start=assessment.start,
            end=assessment.end,
        ))
        return assessment, errors

    def _evidence_for(self, record, policy_path, provenance, result: PolicyResult, collected: datetime):
        package = result.policy.pure_package
        obs_attrs = observation_attributes(record, result.policy, policy_path)
        observation_uuid = str(seeded_uuid(obs_attrs))
        labels = {**record.labels, "package": result.policy.package, "type": RESOURCE_TYPE, "_policy": policy_path}
        violations = result.violations

        if violations:
            title = f"{len(violations)} violation(s) found for policy {package} on {record.name}"
            description = f"Observed {len(violations)} violation(s) for policy {package}."
            evidence = f"Policy {package} was evaluated against {record.instance_id}, and {len(violations)} violation(s) were found."
        else:
            title = f"No violations found for policy {package} on {record.name}"
            description = f"The {package} policy did not return any violations. The configuration is in compliance with the policy."
            evidence = f"Policy {package} was evaluated against {record.instance_id}, and no violations were found."

        observation = Observation(
            identifier=f"{package}/{record.instance_id}",
            uuid=observation_uuid,
            title=title,
            description=description,
            collected=collected,
            expires=collected + self.retention,
            origins=provenance.actors,
            subjects=provenance.subjects,
            activities=provenance.activities,
            components=provenance.components,
            inventory=provenance.inventory,
            relevant_evidence=[RelevantEvidence(evidence)],
            labels=dict(labels),
        )

        def finding(index, **fields) -> Finding:
            attrs = finding_attributes(obs_attrs, self.finding_identity, index)
            return Finding(
                identifier=f"{package}/{record.instance_id}/{index}",
                uuid=str(seeded_uuid(attrs)),
                related_observations=[observation_uuid],
                origins=provenance.actors,
                subjects=provenance.subjects,
                activities=provenance.activities,
                components=provenance.components,
                inventory=provenance.inventory,
                labels=dict(labels),
                **fields,
            )

        if not violations:
            findings = [finding(
                0,
                title=f"No violations found on {package}",
                description=f"No violations found on the {package} policy for {record.name}.",
                remarks="The policy returned no violations.",
                status=STATUS_SATISFIED,
            )]
        else:
            findings = [
                finding(
                    i,
                    title=v.title,
                    description=v.description,
                    remarks=v.remarks,
                    status=STATUS_NOT_SATISFIED,
                )
                for i, v in enumerate(violations)
            ]
        return observation, findings


def _risks(result: PolicyResult) -> List[Risk]:
    return [
        Risk(
            title=r.title,
            description=r.description,
            statement=r.statement,
            links=[Link(href=l.url, text=l.text) for l in r.links],
        )
        for r in result.risks
    ]
