"""
Pure aggregates over an intervention snapshot: totals, grouped counts,
latest record per machine and monthly buckets for the evolution chart.
"""
from collections import Counter
from typing import Iterable, Sequence

from lenswatch.domain.models import Intervention, InterventionType, MonthlyBucket, Totals

COUNTABLE_FIELDS = ("machine", "intervenant", "lentille")

# fr-FR short month labels, as shown on the chart axis
_MONTH_LABELS = (
    "janv.", "févr.", "mars", "avr.", "mai", "juin",
    "juil.", "août", "sept.", "oct.", "nov.", "déc.",
)


def totals(records: Iterable[Intervention]) -> Totals:
    result = Totals()
    for record in records:
        result.total += 1
        if record.type == InterventionType.NETTOYAGE:
            result.nettoyages += 1
        else:
            result.remplacements += 1
    return result


def count_by(records: Iterable[Intervention], field: str) -> dict[str, int]:
    """
    Number of interventions per observed value of `field`.
    Interventions without a lens are left out of the `lentille` grouping.
    """
    if field not in COUNTABLE_FIELDS:
        raise ValueError(f"Cannot group interventions by {field!r}; expected one of {COUNTABLE_FIELDS}")
    counter: Counter[str] = Counter()
    for record in records:
        value = getattr(record, field)
        if not value:
            continue
        counter[value] += 1
    return dict(counter)


def ranked(counts: dict[str, int]) -> list[tuple[str, int]]:
    return sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))


def latest_per_machine(records: Iterable[Intervention]) -> dict[str, Intervention]:
    """
    Single pass keeping the most recent intervention per machine.
    On equal dates the first one met in `records` is kept.
    """
    latest: dict[str, Intervention] = {}
    for record in records:
        current = latest.get(record.machine)
        if current is None or record.date > current.date:
            latest[record.machine] = record
    return latest


def monthly_buckets(records: Iterable[Intervention]) -> list[MonthlyBucket]:
    counts: dict[tuple[int, int], MonthlyBucket] = {}
    for record in records:
        key = (record.date.year, record.date.month)
        bucket = counts.get(key)
        if bucket is None:
            bucket = counts[key] = MonthlyBucket(month=f"{key[0]:04d}-{key[1]:02d}")
        if record.type == InterventionType.NETTOYAGE:
            bucket.nettoyages += 1
        else:
            bucket.remplacements += 1
    return [counts[key] for key in sorted(counts)]


def month_label(month: str) -> str:
    year, mon = month.split("-")
    return f"{_MONTH_LABELS[int(mon) - 1]} {year}"


def monthly_chart(buckets: Sequence[MonthlyBucket]) -> dict:
    """Line chart payload: one label per month and one series per intervention type."""
    return {
        "type": "line",
        "labels": [month_label(b.month) for b in buckets],
        "datasets": [
            {
                "label": "Nettoyages",
                "data": [b.nettoyages for b in buckets],
                "borderColor": "rgb(22, 163, 74)",
            },
            {
                "label": "Remplacements",
                "data": [b.remplacements for b in buckets],
                "borderColor": "rgb(234, 179, 8)",
            },
        ],
    }


def statistics(records: Sequence[Intervention]) -> dict:
    buckets = monthly_buckets(records)
    return {
        "totals": totals(records).model_dump(),
        "par_machine": ranked(count_by(records, "machine")),
        "par_intervenant": ranked(count_by(records, "intervenant")),
        "par_lentille": ranked(count_by(records, "lentille")),
        "mensuel": [b.model_dump() for b in buckets],
        "chart": monthly_chart(buckets),
    }
