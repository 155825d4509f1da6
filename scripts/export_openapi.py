"""Write the BuildWise OpenAPI schema to disk for client generation.

Usage:
    python scripts/export_openapi.py [OUTPUT]    # default: ./openapi.json

Prints each path with its operation ids so renamed routes are easy to spot.
"""

import json
import sys
from pathlib import Path

project_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(project_root))

from buildwise.server.main import app  # noqa: E402


def main(argv: list[str]) -> None:
    output_path = Path(argv[0]) if argv else project_root / "openapi.json"
    schema = app.openapi()
    output_path.write_text(json.dumps(schema, indent=2))

    print(f"OpenAPI schema for BuildWise {schema['info']['version']} -> {output_path}")
    for path, operations in schema.get("paths", {}).items():
        ids = ", ".join(op.get("operationId", "?") for op in operations.values())
        print(f"  {path}: {ids}")


if __name__ == "__main__":
    main(sys.argv[1:])
