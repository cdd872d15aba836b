"""Шар доступу до реляційної БД."""
