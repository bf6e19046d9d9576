"""Shared pytest configuration and fixtures for the hydra-print test suite."""

import sys
from pathlib import Path

import pytest

# Ensure the project root is in the path for imports
PROJECT_ROOT = Path(__file__).parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))


# =============================================================================
# Pytest Configuration
# =============================================================================

def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "hardware: mark test as requiring physical hardware"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )


def pytest_addoption(parser):
    """Add custom command-line options."""
    parser.addoption(
        "--run-hardware",
        action="store_true",
        default=False,
        help="Run tests that require a printer on a serial port",
    )


def pytest_collection_modifyitems(config, items):
    """Skip hardware tests unless --run-hardware is specified."""
    if config.getoption("--run-hardware"):
        return

    skip_hardware = pytest.mark.skip(reason="Need --run-hardware option to run")
    for item in items:
        if "hardware" in item.keywords:
            item.add_marker(skip_hardware)


# =============================================================================
# Shared Fixtures
# =============================================================================

@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def mock_serial_device():
    """Create a mock Marlin serial device for testing."""
    from tests.infrastructure.mocks.serial_mocks import MockMarlinSerial
    return MockMarlinSerial()


@pytest.fixture
def pipeline_config():
    """Pipeline config with short timings so tests stay fast."""
    from hydra_print.core.config import PipelineConfig
    return PipelineConfig(
        resend_delay_s=0.01,
        resend_max_attempts=3,
        prime_timeout_s=1.0,
        http_timeout_s=2.0,
    )
