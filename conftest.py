"""
Global pytest configuration for jctl
Unit tests run against the in-memory gateway; --integration runs only tests that need a live tenant
"""

import pytest

def pytest_addoption(parser):
    """Add integration test options to pytest"""
    parser.addoption(
        "--integration",
        action="store_true",
        default=False,
        help="run integration tests against a live platform"
    )
    parser.addoption(
        "--conn",
        action="store",
        default=None,
        help="connection profile used by integration tests"
    )

def pytest_configure(config):
    """Register the integration marker"""
    config.addinivalue_line("markers", "integration: test needs a live platform (--integration --conn NAME)")

def pytest_collection_modifyitems(config, items):
    """Run either unit tests or integration tests, never both"""
    if config.getoption("--integration"):
        skip_unit = pytest.mark.skip(reason="running integration tests only")
        for item in items:
            if "integration" not in item.keywords:
                item.add_marker(skip_unit)
    else:
        skip_integration = pytest.mark.skip(reason="use --integration --conn NAME to run integration tests")
        for item in items:
            if "integration" in item.keywords:
                item.add_marker(skip_integration)

@pytest.fixture
def conn_name(request):
    """Connection profile for integration tests"""
    name = request.config.getoption("--conn")
    if not name:
        pytest.skip("--conn NAME is required for integration tests")
    return name
