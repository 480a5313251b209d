from edutrack.services.aggregation.overview import system_overview, superadmin_batches, system_health
from edutrack.services.aggregation.batch_overview import batch_overview
from edutrack.services.aggregation.trainer import trainer_dashboard, trainer_batches
from edutrack.services.aggregation.faculty import college_overview, student_performance, department_performance

__all__ = [
    "system_overview",
    "superadmin_batches",
    "system_health",
    "batch_overview",
    "trainer_dashboard",
    "trainer_batches",
    "college_overview",
    "student_performance",
    "department_performance",
]
