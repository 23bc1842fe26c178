from datetime import UTC, datetime, time, timedelta
from typing import Iterable, Optional

from lenswatch.domain.models import Intervention, MachineAlert
from lenswatch.logic.aggregation import latest_per_machine

DEFAULT_STALE_DAYS = 30
_ONE_DAY = timedelta(days=1)


def days_since(record: Intervention, now: datetime) -> int:
    """Whole days between the intervention day (00:00 UTC) and `now`; partial days are dropped."""
    serviced_at = datetime.combine(record.date, time.min, tzinfo=UTC)
    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)
    return (now - serviced_at) // _ONE_DAY


def stale_machines(
    records: Iterable[Intervention],
    now: Optional[datetime] = None,
    threshold_days: int = DEFAULT_STALE_DAYS,
) -> list[MachineAlert]:
    """
    Machines whose latest intervention is more than `threshold_days` old,
    stalest first, then by machine name.
    """
    now = now or datetime.now(UTC)
    alerts = []
    for machine, record in latest_per_machine(records).items():
        jours = days_since(record, now)
        if jours > threshold_days:
            alerts.append(MachineAlert(machine=machine, jours=jours, last_date=record.date))
    alerts.sort(key=lambda a: (-a.jours, a.machine))
    return alerts
