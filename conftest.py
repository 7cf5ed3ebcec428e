"""Pytest configuration for Interview Library."""


def pytest_configure(config):
    """Configure pytest with custom settings."""
    config.addinivalue_line(
        "markers", "integrity: mark test as a restore/delete integrity rule test"
    )
