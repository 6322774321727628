"""Plain-text run summary sent to configuration owners."""

from __future__ import annotations

from deposit_reconciler.core.constants import SUBJECT_ERRORS, SUBJECT_SUCCESS
from deposit_reconciler.services.reconciliation.results import RunSummary


def summary_subject(summary: RunSummary) -> str:
    if summary.all_errors() or summary.transactions_unmatched > 0:
        return SUBJECT_ERRORS
    return SUBJECT_SUCCESS


def summary_body(summary: RunSummary) -> str:
    """Render the run summary.

    The per-configuration breakdown is only included when more than one
    configuration ran.
    """
    finished = summary.finished_at or summary.started_at
    duration = (finished - summary.started_at).total_seconds()

    lines = [
        "Settlement Processing Summary",
        "=============================",
        "",
        f"Processing Date: {summary.started_at:%Y-%m-%d %H:%M:%S}",
        f"Duration: {duration:.0f} seconds",
        f"Configurations Processed: {len(summary.configurations)}",
        "",
        "Overall Results:",
        f"- Settlements Found: {summary.settlements_found}",
        f"- Settlements Processed: {summary.settlements_processed}",
        f"- Settlements Skipped (already processed or not settled): "
        f"{summary.settlements_skipped}",
        f"- Deposits Created: {summary.deposits_created}",
        f"- Total Amount: {summary.total_amount:.2f}",
        "",
        "Transaction Matching:",
        f"- Matched: {summary.transactions_matched}",
        f"- Unmatched: {summary.transactions_unmatched}",
    ]

    if len(summary.configurations) > 1:
        lines += ["", "Results by Configuration:", "-------------------------"]
        for result in summary.configurations:
            lines += [
                f"{result.name}:",
                f"  Settlements: {result.settlements_processed} processed "
                f"of {result.settlements_found} found",
                f"  Matched: {result.transactions_matched}, "
                f"Unmatched: {result.transactions_unmatched}",
                f"  Deposits: {result.deposits_created}",
                f"  Errors: {len(result.errors)}",
            ]

    errors = summary.all_errors()
    if errors:
        lines += ["", "Errors:", "-------"]
        lines += [f"- {error}" for error in errors]

    if summary.transactions_unmatched > 0:
        lines += [
            "",
            "NOTE: Some transactions could not be matched automatically. "
            "Review the unmatched transactions and match them manually.",
        ]

    return "\n".join(lines) + "\n"
