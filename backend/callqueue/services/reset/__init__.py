"""Daily queue reset: schedule, transaction and self-healing engine."""
