#!/usr/bin/env python3
"""Summarize docprofile JSON line logs for ops/CI usage."""

from __future__ import annotations

import argparse
import json
import math
from collections import Counter
from pathlib import Path
from typing import Any


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Summarize docprofile structured logs.")
    parser.add_argument("files", nargs="+", help="One or more JSONL log files.")
    parser.add_argument("--json", action="store_true", help="Output JSON.")
    return parser.parse_args()


def _percentile(values: list[int], p: float) -> int | None:
    if not values:
        return None
    ordered = sorted(values)
    index = min(len(ordered) - 1, max(0, math.ceil((p / 100) * len(ordered)) - 1))
    return ordered[index]


def summarize_log_files(paths: list[Path]) -> dict[str, Any]:
    event_counts: Counter[str] = Counter()
    error_code_counts: Counter[str] = Counter()
    status_counts: Counter[str] = Counter()
    tier_failures: Counter[str] = Counter()
    completeness_values: list[int] = []
    missing_markers_total = 0
    parse_errors = 0
    lines_total = 0

    for path in paths:
        try:
            lines = path.read_text(encoding="utf-8").splitlines()
        except OSError:
            parse_errors += 1
            continue

        for line in lines:
            lines_total += 1
            raw = line.strip()
            if not raw:
                continue

            try:
                payload = json.loads(raw)
            except json.JSONDecodeError:
                parse_errors += 1
                continue

            if not isinstance(payload, dict):
                parse_errors += 1
                continue

            event = payload.get("event")
            if isinstance(event, str):
                event_counts[event] += 1

            error_code = payload.get("error_code")
            if isinstance(error_code, str):
                error_code_counts[error_code] += 1

            if "status_code" in payload:
                status_counts[str(payload["status_code"])] += 1

            if event == "storage_tier_failed" and isinstance(payload.get("tier"), str):
                tier_failures[payload["tier"]] += 1

            percentage = payload.get("percentage")
            if event == "profile_auto_filled" and isinstance(percentage, int | float):
                completeness_values.append(int(percentage))

            missing_count = payload.get("missing_count")
            if isinstance(missing_count, int):
                missing_markers_total += missing_count

    return {
        "files": [str(path) for path in paths],
        "lines_total": lines_total,
        "parse_errors": parse_errors,
        "event_counts": dict(sorted(event_counts.items())),
        "error_code_counts": dict(sorted(error_code_counts.items())),
        "http_status_counts": dict(sorted(status_counts.items())),
        "storage_tier_failures": dict(sorted(tier_failures.items())),
        "missing_markers_total": missing_markers_total,
        "completeness_p50": _percentile(completeness_values, 50),
        "completeness_p95": _percentile(completeness_values, 95),
    }


def main() -> None:
    args = _parse_args()
    paths = [Path(item).expanduser() for item in args.files]
    summary = summarize_log_files(paths)

    if args.json:
        print(json.dumps(summary, ensure_ascii=False, indent=2, sort_keys=True))
        return

    print("Docprofile Log Summary")
    print(f"files={len(summary['files'])}")
    print(f"lines_total={summary['lines_total']}")
    print(f"parse_errors={summary['parse_errors']}")
    print(f"event_counts={summary['event_counts']}")
    print(f"error_code_counts={summary['error_code_counts']}")
    print(f"http_status_counts={summary['http_status_counts']}")
    print(f"storage_tier_failures={summary['storage_tier_failures']}")
    print(f"missing_markers_total={summary['missing_markers_total']}")
    print(f"completeness_p50={summary['completeness_p50']}")
    print(f"completeness_p95={summary['completeness_p95']}")


if __name__ == "__main__":
    main()
