"""Shared fixtures for scanner tests."""

import numpy as np
import pytest

from tests.synthetic import make_outlined_page, make_rgba


@pytest.fixture
def outlined_page() -> np.ndarray:
    """400x300 white page with a black outline from (50, 50) to (350, 250)."""
    return make_outlined_page()


@pytest.fixture
def uniform_gray() -> np.ndarray:
    """400x300 featureless mid-gray image."""
    return make_rgba(300, 400, 128)
