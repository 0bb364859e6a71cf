"""Root conftest — shared test configuration."""

import os

# Ensure tests never reach real infrastructure
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("REDIS_URL", "redis://localhost:6399/15")
os.environ.setdefault("PAYMENT_GATEWAY_API_KEY", "pg-test-fake-key")
os.environ.setdefault("LOG_FORMAT", "text")
