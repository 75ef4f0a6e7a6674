import json
from pathlib import Path

CATALOG_PATH = Path(__file__).resolve().parents[1] / "data" / "catalog.json"


def load_catalog(path=None) -> dict:
    p = Path(path) if path else CATALOG_PATH
    return json.loads(p.read_text(encoding="utf-8"))
