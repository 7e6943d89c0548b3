"""CSV export of ledger rows.

The header line is plain; every value line has all fields double-quoted.
"""

import csv
import io
from typing import Dict, List, Sequence

import pandas as pd

from studyspend.aggregator import EXPORT_COLUMNS


def to_csv(rows: Sequence[Dict[str, object]]) -> str:
    header = ",".join(EXPORT_COLUMNS) + "\n"
    if not rows:
        return header
    frame = pd.DataFrame(list(rows), columns=list(EXPORT_COLUMNS)).astype(object)
    frame["Notes"] = frame["Notes"].fillna("")
    body = frame.to_csv(
        index=False,
        header=False,
        quoting=csv.QUOTE_ALL,
        lineterminator="\n",
    )
    return header + body


def parse_csv(text: str) -> List[Dict[str, str]]:
    """Read an exported payload back; all values come back as strings."""
    frame = pd.read_csv(
        io.StringIO(text),
        dtype=str,
        keep_default_na=False,
    )
    return frame.to_dict(orient="records")


def export_filename(period_key: str) -> str:
    return f"studyspend-{period_key}.csv"
