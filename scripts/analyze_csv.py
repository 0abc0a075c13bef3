"""Analyze a telemetry CSV from the command line and keep the result locally.

Usage:
  python scripts/analyze_csv.py session.csv \\
      --user driver42 \\
      --laps 2 3 4 \\
      --track-condition damp \\
      --track-temperature 18.5 \\
      --db apex_store.db \\
      --output report.md

  python scripts/analyze_csv.py --list --user driver42
  python scripts/analyze_csv.py --preview session.csv

The backend URL comes from APEX_API_URL (default http://localhost:8000).
"""

from __future__ import annotations

import argparse
import os
import sys

from dotenv import load_dotenv

from apex_coach.api.client import ApexClient
from apex_coach.api.validator import CsvUpload
from apex_coach.errors import STORAGE_UNAVAILABLE, VALIDATION, ApexError
from apex_coach.reporting.formatter import MarkdownFormatter
from apex_coach.reporting.scores import aggregate_statistics, display_score, score_badge
from apex_coach.storage.backends import BackendError, SqliteBackend
from apex_coach.storage.store import DEFAULT_MAX_ENTRIES, AnalysisStore
from apex_coach.web.service import AnalysisService

load_dotenv()


def _fail(exc: ApexError) -> None:
    print(f"  [!] {exc.message}", file=sys.stderr)
    print(f"      {exc.hint}", file=sys.stderr)
    sys.exit(1)


def _list(store: AnalysisStore, user: str | None) -> None:
    summaries = store.list_summaries(user)
    if not summaries:
        print("No saved analyses.")
        return
    for s in summaries:
        print(f"{s.date}  {s.id:<28} score {s.score:>3}  grade {s.grade:<3}  {s.corner_count} corners")
    stats = aggregate_statistics(summaries)
    print()
    print(f"Total {stats.total} · average {stats.average_score} · best {stats.best_score}")


def main() -> None:
    ap = argparse.ArgumentParser(description="Analyze a racing telemetry CSV")
    ap.add_argument("csv", nargs="?", help="Telemetry CSV file")
    ap.add_argument("--user", default=None, help="Identity to save under (default: guest)")
    ap.add_argument("--laps", type=int, nargs="*", default=None, help="Only analyze these laps")
    ap.add_argument("--track-condition", default="dry", help="dry, damp, wet or rain")
    ap.add_argument("--track-temperature", type=float, default=None, help="Track temperature in °C")
    ap.add_argument("--db", default=os.environ.get("APEX_STORE_DB", "apex_store.db"), help="SQLite store path")
    ap.add_argument("--output", default=None, help="Write a Markdown report to this path")
    ap.add_argument("--no-save", action="store_true", help="Do not keep the result locally")
    ap.add_argument("--list", action="store_true", help="List saved analyses and exit")
    ap.add_argument("--preview", action="store_true", help="Only list the laps found in the CSV")
    args = ap.parse_args()

    max_entries = int(os.environ.get("APEX_MAX_STORED_ANALYSES", DEFAULT_MAX_ENTRIES))
    try:
        backend = SqliteBackend(args.db)
    except BackendError as exc:
        _fail(ApexError(STORAGE_UNAVAILABLE, f"Cannot open result store: {exc}"))
    store = AnalysisStore(backend, max_entries=max_entries)
    try:
        if args.list:
            try:
                _list(store, args.user)
            except ApexError as exc:
                _fail(exc)
            return
        if not args.csv:
            ap.error("a CSV file is required unless --list is given")

        try:
            upload = CsvUpload.from_path(args.csv)
        except OSError as exc:
            _fail(ApexError(VALIDATION, f"Cannot read {args.csv}: {exc.strerror or exc}"))
        client = ApexClient()
        print(f"File      : {upload.filename} ({upload.size / 1024:.1f} KB)")
        print(f"Backend   : {client.base_url}")
        print()

        if args.preview:
            try:
                laps = client.preview_segments(upload)
            except ApexError as exc:
                _fail(exc)
            for lap in laps:
                flag = "  (outlier)" if lap.is_outlier else ""
                print(f"Lap {lap.lap_number:>3}: {lap.lap_time_seconds:8.3f}s  {lap.points_count} points{flag}")
            return

        print("1/2  Uploading and analyzing...")
        svc = AnalysisService(client, None if args.no_save else store)
        try:
            outcome = svc.run_analysis(
                upload,
                identity=args.user,
                lap_filter=args.laps,
                track_condition=args.track_condition,
                track_temperature=args.track_temperature,
            )
        except ApexError as exc:
            _fail(exc)

        result = outcome.result
        score = display_score(result.performance_score)
        print(f"     Score {score:g}/100 · grade {result.performance_score.grade} · {score_badge(score)}")
        print(f"     {result.corners_detected} corners, {len(result.coaching_advice)} coaching tips")

        print("2/2  Saving...")
        if outcome.saved:
            print(f"     Saved as {outcome.saved_id}")
        elif outcome.save_error is not None:
            print(f"  [!] Not saved: {outcome.save_error.message}", file=sys.stderr)

        if args.output:
            MarkdownFormatter().write(result, args.output)
            print(f"\n[OK] Report written to {args.output}")
    finally:
        backend.close()


if __name__ == "__main__":
    main()
