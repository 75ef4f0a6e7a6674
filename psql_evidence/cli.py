from __future__ import annotations

import argparse
import json

from psql_evidence.config import ConfigError, Settings, load_config, validate_for_run, with_overrides
from psql_evidence.runner import ExecutionStatus, run_evaluation
from psql_evidence.sinks.api import ApiClient
from psql_evidence.sinks.base import EvidenceSink
from psql_evidence.sinks.file import JsonFileSink
from psql_evidence.utils.logging_utils import setup_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="psql-evidence",
        description="Collect Azure PostgreSQL flexible server configuration and emit compliance evidence",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    eval_parser = subparsers.add_parser("eval", help="Evaluate servers against policy bundles")
    eval_parser.add_argument("--config", default="config.json")
    eval_parser.add_argument("--policy", dest="policy_paths", action="append", default=None,
                             help="Policy bundle path; repeat for several (overrides config)")
    eval_parser.add_argument("--output-dir", default=None, help="Write evidence as JSON lines instead of calling the API")
    eval_parser.add_argument("--log-level", default=None)

    return parser


def build_sink(settings: Settings) -> EvidenceSink:
    if settings.output_dir:
        return JsonFileSink(settings.output_dir)
    return ApiClient(settings.api_url, token=settings.api_token())


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "eval":
        try:
            settings = with_overrides(
                load_config(args.config),
                policy_paths=args.policy_paths,
                output_dir=args.output_dir,
                log_level=args.log_level.upper() if args.log_level else None,
            )
            validate_for_run(settings)
        except ConfigError as exc:
            parser.error(str(exc))
            return 2

        setup_logging(settings.log_level)
        result = run_evaluation(settings, sink=build_sink(settings))
        print(json.dumps(result.to_dict(), indent=2, ensure_ascii=True))
        return 0 if result.status == ExecutionStatus.SUCCESS else 1

    parser.error(f"Unsupported command: {args.command}")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
