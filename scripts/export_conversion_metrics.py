#!/usr/bin/env python3
"""
Export conversion latency metrics from the Firestore job collection.

What it does
- Reads the jobs collection (JOB_STORE_BACKEND=firestore deployments), optionally
  limited to a creation date range
- Computes per-job latency: completedAt - createdAt
- Summarizes by status (count, avg, p50, p95 latency)
- Exports a per-job CSV and a summary CSV, and prints the same headline stats
  the API serves at /jobs/stats

Requirements
- google-cloud-firestore
- A service account or ADC with read access to the Firestore database

Usage examples
export GOOGLE_APPLICATION_CREDENTIALS=/path/to/sa.json
python scripts/export_conversion_metrics.py
python scripts/export_conversion_metrics.py --start 2025-09-01 --end 2025-09-30
python scripts/export_conversion_metrics.py --collection conversions --database "(default)"
"""
from __future__ import annotations

import argparse
import csv
import os
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from google.cloud import firestore

from conversion_tracker.models import Job
from conversion_tracker.services.stats import summarize_jobs


def fetch_jobs(
    client: firestore.Client,
    collection: str,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> Iterable[Dict]:
    q = client.collection(collection)
    if start is not None:
        q = q.where("createdAt", ">=", start)
    if end is not None:
        q = q.where("createdAt", "<", end)
    for doc in q.order_by("createdAt").stream():
        yield doc.to_dict()


def latency_ms(job: Job) -> Optional[float]:
    if job.completedAt is None:
        return None
    return (job.completedAt - job.createdAt).total_seconds() * 1000.0


def percentile(values: List[float], p: float) -> Optional[float]:
    if not values:
        return None
    values = sorted(values)
    k = max(0, min(len(values) - 1, int(round(p * (len(values) - 1)))))
    return values[k]


def summarize(group: List[Job]) -> Dict[str, Optional[float]]:
    lat = [x for x in (latency_ms(j) for j in group) if x is not None]
    return {
        "count": float(len(group)),
        "avg_latency_ms": sum(lat) / len(lat) if lat else None,
        "p50_latency_ms": percentile(lat, 0.5),
        "p95_latency_ms": percentile(lat, 0.95),
        "avg_attempts": sum(j.attempt for j in group) / len(group) if group else None,
    }


def write_csv_jobs(path: Path, rows: List[Job]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", newline="", encoding="utf-8") as f:
        w = csv.writer(f)
        w.writerow(["id", "filename", "originalSize", "status", "attempt", "createdAt", "completedAt", "ms.latency", "error"])
        for j in rows:
            ms = latency_ms(j)
            w.writerow([
                j.id,
                j.filename,
                j.originalSize,
                j.status.value,
                j.attempt,
                j.createdAt.isoformat(),
                j.completedAt.isoformat() if j.completedAt else "",
                f"{ms:.0f}" if ms is not None else "",
                j.error or "",
            ])


def write_csv_summary(path: Path, summary: Dict[str, Dict[str, Optional[float]]]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    keys = ["count", "avg_latency_ms", "p50_latency_ms", "p95_latency_ms", "avg_attempts"]
    with path.open("w", newline="", encoding="utf-8") as f:
        w = csv.writer(f)
        w.writerow(["status"] + keys)
        for status, stats in summary.items():
            w.writerow([status] + [stats.get(k) if stats.get(k) is not None else "" for k in keys])


def main() -> None:
    parser = argparse.ArgumentParser(description="Export conversion latency metrics from Firestore")
    parser.add_argument("--start", type=str, help="Start date (YYYY-MM-DD, inclusive)")
    parser.add_argument("--end", type=str, help="End date (YYYY-MM-DD, inclusive)")
    parser.add_argument("--project", type=str, default=os.getenv("GCP_PROJECT", os.getenv("GOOGLE_CLOUD_PROJECT", "")))
    parser.add_argument("--database", type=str, default=os.getenv("FIRESTORE_DATABASE_ID", "(default)"))
    parser.add_argument("--collection", type=str, default=os.getenv("FIRESTORE_COLLECTION", "conversions"))
    parser.add_argument("--output-dir", type=str, default="analysis")

    args = parser.parse_args()

    start = datetime.strptime(args.start, "%Y-%m-%d").replace(tzinfo=timezone.utc) if args.start else None
    # Inclusive end: compare against the following midnight
    end = (
        (datetime.strptime(args.end, "%Y-%m-%d") + timedelta(days=1)).replace(tzinfo=timezone.utc)
        if args.end
        else None
    )

    client = firestore.Client(project=args.project or None, database=args.database)
    jobs = [Job.model_validate(d) for d in fetch_jobs(client, args.collection, start, end) if d]

    groups: Dict[str, List[Job]] = defaultdict(list)
    for j in jobs:
        groups[j.status.value].append(j)
    summary = {status: summarize(group) for status, group in sorted(groups.items())}

    ts = datetime.now().strftime("%Y%m%d-%H%M%S")
    outdir = Path(args.output_dir)
    write_csv_jobs(outdir / f"jobs-{ts}.csv", jobs)
    write_csv_summary(outdir / f"summary-{ts}.csv", summary)

    # Print human-friendly summary
    headline = summarize_jobs(jobs)
    print("Collected jobs:", headline.totalUploaded)
    print("Converted:", headline.totalConverted)
    print("Average processing time:", headline.avgProcessingTime)
    for name, stats in summary.items():
        print(f"\nStatus: {name}")
        for k, v in stats.items():
            print(f"  {k}: {v}")


if __name__ == "__main__":
    main()
