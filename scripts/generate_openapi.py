"""Export the OpenAPI document with the engine's rejection body attached."""
from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Any

from relief_finance.main import create_application
from relief_finance.services.errors import ErrorKind

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

REJECTION_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["kind", "message", "entity"],
    "properties": {
        "kind": {"type": "string", "enum": [kind.value for kind in ErrorKind]},
        "message": {"type": "string"},
        "entity": {"type": "string"},
        "entity_id": {"type": "string", "nullable": True},
        "field": {"type": "string", "nullable": True},
        "rule": {"type": "string", "nullable": True},
        "current": {"nullable": True},
        "attempted": {"nullable": True},
        "limit": {"nullable": True},
    },
}


def build_document() -> dict[str, Any]:
    document = create_application().openapi()
    document.setdefault("components", {}).setdefault("schemas", {})["ConsistencyRejection"] = REJECTION_SCHEMA
    return document


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--output", type=Path, default=Path("docs/openapi.json"))
    args = parser.parse_args()

    args.output.parent.mkdir(parents=True, exist_ok=True)
    args.output.write_text(json.dumps(build_document(), indent=2), encoding="utf-8")
    logger.info("OpenAPI document written to %s", args.output)


if __name__ == "__main__":
    main()
