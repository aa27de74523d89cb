"""Write the Chainview OpenAPI document as JSON and YAML."""

from __future__ import annotations

import argparse
import json
from pathlib import Path
import sys

import yaml

ROOT = Path(__file__).resolve().parents[3]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from chainview.webservice.main import create_app  # noqa: E402


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--outdir", default=str(ROOT / "docs" / "openapi"))
    args = parser.parse_args()

    outdir = Path(args.outdir)
    outdir.mkdir(parents=True, exist_ok=True)

    openapi_schema = create_app().openapi()

    json_path = outdir / "chainview-openapi.json"
    json_path.write_text(json.dumps(openapi_schema, indent=2), encoding="utf-8")

    yaml_path = outdir / "chainview-openapi.yaml"
    yaml_path.write_text(yaml.safe_dump(openapi_schema, sort_keys=False), encoding="utf-8")
    print(f"Wrote {json_path} and {yaml_path}")


if __name__ == "__main__":
    main()
