# Application Stats Package
from .metrics_calculator import MetricsCalculator, ScheduleMetrics
from .service import ScheduleStatsService

__all__ = ["MetricsCalculator", "ScheduleMetrics", "ScheduleStatsService"]
