# === MODULE PURPOSE ===
# Pytest configuration and shared fixtures for tests.


# Marker for tests that require a live PostgreSQL instance
def pytest_configure(config):
    config.addinivalue_line(
        "markers", "live: marks tests as requiring a live PostgreSQL database (may be slow)"
    )
