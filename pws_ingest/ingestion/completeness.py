from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, List, Mapping, Optional

import pandas as pd

# One reading every five minutes
FULL_DAY_OBSERVATIONS = 24 * 12


@dataclass(frozen=True)
class CompletenessReport:
    """Per-day coverage between the first and last stored date.

    The first and last dates are never flagged as incomplete: ingestion
    usually starts and stops part-way through a day.
    """

    first_date: Optional[str] = None
    last_date: Optional[str] = None
    incomplete: List[str] = field(default_factory=list)
    missing: List[str] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return self.first_date is None

    def message(self) -> str:
        if self.empty:
            return "No observations stored yet."
        text = f"Observations range from {self.first_date} to {self.last_date}."
        if self.incomplete:
            text += f" Incomplete data for dates {', '.join(self.incomplete)}."
        if self.missing:
            text += f" No data for dates {', '.join(self.missing)}."
        return text


def completeness_report(
    day_counts: Mapping[str, int],
    expected_per_day: int = FULL_DAY_OBSERVATIONS,
) -> CompletenessReport:
    """Flag missing and partial days.

    Parameters
    ----------
    day_counts : Mapping[str, int]
        Observation count per ``YYYY-MM-DD`` date; days with no rows may be
        absent or mapped to 0.
    expected_per_day : int
        Count below which a day is reported as incomplete.
    """
    counts = pd.Series({day: int(n) for day, n in day_counts.items() if int(n) > 0}, dtype="int64")
    if counts.empty:
        return CompletenessReport()

    counts.index = pd.to_datetime(counts.index, format="%Y-%m-%d")
    counts = counts.sort_index()
    first, last = counts.index[0], counts.index[-1]
    full = counts.reindex(pd.date_range(first, last, freq="D"), fill_value=0)

    missing = full[full == 0].index
    partial = full[(full > 0) & (full < expected_per_day)].index
    partial = partial[(partial != first) & (partial != last)]

    return CompletenessReport(
        first_date=first.strftime("%Y-%m-%d"),
        last_date=last.strftime("%Y-%m-%d"),
        incomplete=[d.strftime("%Y-%m-%d") for d in partial],
        missing=[d.strftime("%Y-%m-%d") for d in missing],
    )


def count_days(days: Iterable[str]) -> dict[str, int]:
    """Count observations per ``YYYY-MM-DD`` date."""
    series = pd.Series(list(days), dtype="object")
    if series.empty:
        return {}
    return {str(k): int(v) for k, v in series.value_counts().items()}
