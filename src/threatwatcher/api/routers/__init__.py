"""Роутери FastAPI."""
