from lenswatch.domain.models import (
    Intervention,
    InterventionFilter,
    InterventionType,
    MachineAlert,
    MonthlyBucket,
    NewIntervention,
    Totals,
)

__all__ = [
    "Intervention",
    "InterventionFilter",
    "InterventionType",
    "MachineAlert",
    "MonthlyBucket",
    "NewIntervention",
    "Totals",
]
