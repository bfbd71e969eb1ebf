"""
Serialization helpers for handing a report to export/display layers.
The engine returns text; writing files is the caller's job.
"""

import csv
import io

from ..models import ReconciliationReport

DISCREPANCY_COLUMNS = [
    "severity",
    "kind",
    "channel_id",
    "order_id",
    "reference_id",
    "amount_delta",
    "confidence",
    "explanation",
    "suggested_action",
]


def report_to_csv(report: ReconciliationReport) -> str:
    """Render the ranked discrepancy list as CSV text."""
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=DISCREPANCY_COLUMNS, lineterminator="\n")
    writer.writeheader()

    for discrepancy in report.discrepancies:
        row = discrepancy.to_dict()
        writer.writerow({
            column: "" if row[column] is None else row[column]
            for column in DISCREPANCY_COLUMNS
        })

    return buffer.getvalue()


def report_to_json(report: ReconciliationReport, indent: int = 2) -> str:
    """Deterministic JSON rendering of the full report."""
    return report.to_json(indent=indent)
