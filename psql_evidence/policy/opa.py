from __future__ import annotations
import json
import logging
import os
import shutil
import subprocess
import threading
import time
from typing import Any, Dict, List, Optional, Tuple

from ..errors import PolicyEvaluationError, RunCancelledError
from .base import POLICY_NAMESPACE, Policy, PolicyEvaluator, PolicyLink, PolicyResult, PolicyRisk, Violation

LOGGER = logging.getLogger(__name__)

POLL_INTERVAL = 0.2


def command_exists(name: str) -> bool:
    return shutil.which(name) is not None


def run_command(
    command: List[str],
    stdin: Optional[str] = None,
    timeout: int = 60,
    cancel_event: Optional[threading.Event] = None,
) -> Tuple[int, str, str]:
    """Run a command to completion, killing it on timeout or once ``cancel_event`` is set."""
    LOGGER.debug("Executing command: %s", " ".join(command))
    process = subprocess.Popen(
        command,
        stdin=subprocess.PIPE,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        env=os.environ.copy(),
        text=True,
    )
    deadline = time.monotonic() + timeout
    pending = stdin
    while True:
        if cancel_event is not None and cancel_event.is_set():
            process.kill()
            process.communicate()
            raise RunCancelledError({"command": command[0]})
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            process.kill()
            process.communicate()
            raise subprocess.TimeoutExpired(command, timeout)
        try:
            stdout, stderr = process.communicate(input=pending, timeout=min(remaining, POLL_INTERVAL))
        except subprocess.TimeoutExpired:
            # input is only written on the first call
            pending = None
            continue
        return process.returncode, stdout, stderr


class OpaPolicyEvaluator(PolicyEvaluator):
    """Runs policy bundles through the ``opa`` binary.

    Every module whose package sits under ``data.compliance_plugin`` is one
    policy; its ``violation`` set and optional ``risks`` list become a
    PolicyResult.
    """

    def __init__(self, opa_binary: str = "opa", timeout: int = 60, cancel_event: Optional[threading.Event] = None):
        self.opa_binary = opa_binary
        self.timeout = timeout
        self.cancel_event = cancel_event

    def evaluate(self, policy_path, record) -> List[PolicyResult]:
        context = {"policy-path": policy_path, "instance-id": record.instance_id}
        if not command_exists(self.opa_binary):
            raise PolicyEvaluationError(f"{self.opa_binary} not found in PATH", context)

        namespaces = self.compile(policy_path, context)
        if not namespaces:
            LOGGER.warning("no %s packages found in %s", POLICY_NAMESPACE, policy_path)
            return []
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise RunCancelledError(context)
        document = self.execute(policy_path, record, context)

        results = []
        for package in sorted(namespaces):
            package_doc = _lookup(document, package)
            if not isinstance(package_doc, dict):
                continue
            files = namespaces[package]
            results.append(PolicyResult(
                policy=Policy(package=package, file=files[0] if files else ""),
                violations=[_violation(v) for v in package_doc.get("violation") or []],
                risks=[_risk(r) for r in package_doc.get("risks") or []],
            ))
        return results

    def compile(self, policy_path: str, context: Dict[str, str]) -> Dict[str, List[str]]:
        """Return the policy namespaces in the bundle mapped to their source files."""
        payload = self._run_json([self.opa_binary, "inspect", "--format", "json", policy_path], None, context)
        namespaces = payload.get("namespaces") or {}
        return {
            ns: list(files or [])
            for ns, files in namespaces.items()
            if ns == POLICY_NAMESPACE or ns.startswith(POLICY_NAMESPACE + ".")
        }

    def execute(self, policy_path: str, record, context: Dict[str, str]) -> Dict[str, Any]:
        command = [
            self.opa_binary, "eval",
            "--bundle", policy_path,
            "--format", "json",
            "--stdin-input",
            POLICY_NAMESPACE,
        ]
        payload = self._run_json(command, json.dumps(record.to_policy_input()), context)
        # an undefined query yields no "result" key at all
        for result in payload.get("result") or []:
            for expression in result.get("expressions") or []:
                value = expression.get("value")
                if isinstance(value, dict):
                    return value
        return {}

    def _run_json(self, command: List[str], stdin: Optional[str], context: Dict[str, str]) -> Dict[str, Any]:
        try:
            code, stdout, stderr = run_command(command, stdin=stdin, timeout=self.timeout, cancel_event=self.cancel_event)
        except RunCancelledError as e:
            e.context = {**context, **e.context}
            raise
        except subprocess.TimeoutExpired as e:
            raise PolicyEvaluationError(f"{command[1]} timed out after {self.timeout}s", context) from e
        except OSError as e:
            raise PolicyEvaluationError(f"unable to run {self.opa_binary}: {e}", context) from e
        if code != 0:
            raise PolicyEvaluationError(f"opa {command[1]} failed: {(stderr or stdout).strip()}", context)
        try:
            payload = json.loads(stdout or "{}")
        except json.JSONDecodeError as e:
            raise PolicyEvaluationError(f"opa {command[1]} returned invalid JSON: {e}", context) from e
        if not isinstance(payload, dict):
            raise PolicyEvaluationError(f"opa {command[1]} returned an unexpected payload", context)
        return payload


def _lookup(document: Dict[str, Any], package: str) -> Any:
    node: Any = document
    suffix = package[len(POLICY_NAMESPACE):].strip(".")
    for segment in suffix.split(".") if suffix else []:
        if not isinstance(node, dict):
            return None
        node = node.get(segment)
    return node


def _violation(raw: Any) -> Violation:
    if not isinstance(raw, dict):
        return Violation(title=str(raw))
    return Violation(
        title=str(raw.get("title", "")),
        description=str(raw.get("description", "")),
        remarks=str(raw.get("remarks", "")),
    )


def _risk(raw: Dict[str, Any]) -> PolicyRisk:
    return PolicyRisk(
        title=str(raw.get("title", "")),
        description=str(raw.get("description", "")),
        statement=str(raw.get("statement", "")),
        links=[PolicyLink(text=str(l.get("text", "")), url=str(l.get("url", ""))) for l in raw.get("links") or []],
    )
