"""
Export of command results.
"""

import csv
import json
from typing import Iterable

from .connection import ExecutionResult

# Author: Vamsi


RESULT_FIELDS = ['host', 'command', 'exit_code', 'exit_signal', 'output', 'error',
                 'duration', 'timestamp', 'success']


def export_results(results: Iterable[ExecutionResult], filename: str, format: str = "json"):
    """
    Export results to file.

    Args:
        results: Command results
        filename: Output filename
        format: Export format (json, csv)
    """
    rows = [result.to_dict() for result in results]

    if format == "json":
        with open(filename, 'w', encoding='utf-8') as f:
            json.dump(rows, f, indent=2)
    elif format == "csv":
        with open(filename, 'w', newline='', encoding='utf-8') as f:
            writer = csv.DictWriter(f, fieldnames=RESULT_FIELDS)
            writer.writeheader()
            writer.writerows(rows)
    else:
        raise ValueError(f"Unsupported export format: {format}")
