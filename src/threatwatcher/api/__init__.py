"""HTTP API сервісу."""
