"""JSON report output."""

from __future__ import annotations

import json
from collections import Counter
from pathlib import Path
from typing import Any

from shotdiff.models.entities import BuildSummary


def generate_json_report(
    summary: BuildSummary,
    diffs: list[dict[str, Any]],
    output_path: Path,
) -> None:
    """Write a machine-readable JSON report of one build."""
    report = summary.model_dump(mode="json")
    report["counts"] = dict(Counter(d["status"] for d in diffs))
    report["diffs"] = diffs

    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w") as f:
        json.dump(report, f, indent=2, default=str)
