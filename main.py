from __future__ import annotations

from psql_evidence.cli import main

if __name__ == "__main__":
    raise SystemExit(main())
