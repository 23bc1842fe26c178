from typing import Iterable, Sequence

from lenswatch.domain.models import Intervention, InterventionFilter

_EQUALITY_FIELDS = ("machine", "intervenant", "type", "lentille")


def _field_text(record: Intervention, field: str) -> str:
    value = getattr(record, field)
    if value is None:
        return ""
    return value.value if hasattr(value, "value") else str(value)


def matches(record: Intervention, spec: InterventionFilter) -> bool:
    for field in _EQUALITY_FIELDS:
        wanted = getattr(spec, field)
        if wanted and _field_text(record, field) != wanted:
            return False

    if spec.date and not record.date.isoformat().startswith(spec.date):
        return False

    if spec.search:
        needle = spec.search.lower()
        if not any(needle in value.lower() for value in record.searchable_values()):
            return False
    return True


def apply_filters(records: Sequence[Intervention], spec: InterventionFilter) -> list[Intervention]:
    """
    Conjunction of the equality filters, the date prefix and the free-text search.
    Relative order of `records` is preserved.
    """
    if spec.is_empty:
        return list(records)
    return [record for record in records if matches(record, spec)]


def distinct_lenses(records: Iterable[Intervention]) -> list[str]:
    return sorted({r.lentille for r in records if r.lentille})
