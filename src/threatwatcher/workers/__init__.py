"""Фонові процеси: прийом подій та планувальник AI-аналізу."""
