"""
Pytest configuration for the CHIP-8 test suite.

    python -m pytest                    # full suite
    python -m pytest -m "not display"   # skip the pygame window tests

Window tests run against SDL's dummy drivers so no screen or sound
device is needed.
"""

import os


def pytest_configure(config):
    """Register markers and point SDL at its dummy drivers."""
    config.addinivalue_line("markers",
        "display: tests that open a pygame window (skipped without pygame)")
    os.environ.setdefault("SDL_VIDEODRIVER", "dummy")
    os.environ.setdefault("SDL_AUDIODRIVER", "dummy")
