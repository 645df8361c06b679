# Application Stats Package
from .metrics_calculator import DeckCounts, Maturity, MetricsCalculator
from .service import DeckSummary, ReviewStatsService

__all__ = ["MetricsCalculator", "DeckCounts", "Maturity", "ReviewStatsService", "DeckSummary"]
