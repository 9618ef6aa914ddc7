"""Rate-budget-aware GitHub project activity collection and statistics."""

__version__ = "0.3.0"
