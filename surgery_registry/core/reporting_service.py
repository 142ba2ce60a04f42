"""
Reporting Service

Prints run reports to stderr so stdout stays free for JSON output.
"""

import sys
from typing import List

from .data_models import MatchKind, PatientRecord, RegistryStatistics, UpdateStatistics
from ..reporting.audit_logger import generate_registry_report


class RegistryReportingService:
    """Service for printing registry and description-update reports."""

    @staticmethod
    def print_registry_report(patients: List[PatientRecord], stats: RegistryStatistics):
        """Print the registry report."""
        print("\n" + generate_registry_report(patients, stats), file=sys.stderr)

    @staticmethod
    def print_update_report(stats: UpdateStatistics, decisions: List, dry_run: bool = False):
        """Print the description update report."""
        print("\n" + "="*70, file=sys.stderr)
        title = "CONTROL NOTE UPDATE REPORT"
        print(title + (" (DRY RUN)" if dry_run else ""), file=sys.stderr)
        print("="*70, file=sys.stderr)

        print(f"\nOVERALL STATISTICS:", file=sys.stderr)
        print(f"Events on target date: {stats.total_processed:,}", file=sys.stderr)
        print(f"Skipped (not a control): {stats.skipped:,}", file=sys.stderr)
        print(f"Single matches: {stats.single_matches:,} ({stats.get_resolution_rate():.1%})", file=sys.stderr)
        print(f"Ambiguous: {stats.ambiguous:,}", file=sys.stderr)
        print(f"No match: {stats.no_matches:,}", file=sys.stderr)
        print(f"Updated: {stats.updated:,} | Unchanged: {stats.unchanged:,}", file=sys.stderr)

        RegistryReportingService._print_review_queue(decisions)

    @staticmethod
    def _print_review_queue(decisions: List):
        """Print visits that need a human to pick the patient."""
        review = [d for d in decisions if d.match_kind != MatchKind.SINGLE]
        if not review:
            return

        print(f"\nNEEDS REVIEW ({len(review)} items):", file=sys.stderr)
        print("-" * 50, file=sys.stderr)
        for i, decision in enumerate(review[:10], 1):
            candidates = ", ".join(decision.patient_names) or "-"
            print(f"{i:2d}. {decision.title:<30} | {decision.match_kind.value:<10} | {candidates}",
                  file=sys.stderr)

        if len(review) > 10:
            print(f"... and {len(review) - 10} more items", file=sys.stderr)
