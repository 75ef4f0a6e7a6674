from __future__ import annotations
import json
from pathlib import Path
from typing import Any, Dict, Iterable, List

from ..errors import PersistenceError
from ..evidence.base import AssessmentResult, Finding, Observation
from .base import EvidenceSink


class JsonFileSink(EvidenceSink):
    """Appends evidence as JSON lines under ``output_dir``."""

    def __init__(self, output_dir):
        self.output_dir = Path(output_dir)

    def create_observations(self, observations: List[Observation]) -> None:
        self._append("observations.jsonl", (o.to_dict() for o in observations))

    def create_findings(self, findings: List[Finding]) -> None:
        self._append("findings.jsonl", (f.to_dict() for f in findings))

    def create_result(self, result: AssessmentResult) -> None:
        payload = result.to_dict()
        payload["observations"] = [o.uuid for o in result.observations]
        payload["findings"] = [f.uuid for f in result.findings]
        self._append("results.jsonl", [payload])

    def _append(self, name: str, rows: Iterable[Dict[str, Any]]) -> None:
        path = self.output_dir / name
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with path.open("a", encoding="utf-8") as handle:
                for row in rows:
                    handle.write(json.dumps(row, ensure_ascii=True, sort_keys=True) + "\n")
        except OSError as e:
            raise PersistenceError(f"unable to write {path}: {e}", {"path": str(path)}) from e
