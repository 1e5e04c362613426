from __future__ import annotations

from typing import Any

import pytest

STATUS_ROW = {
    "last_update": "2024-01-01 10:00:00",
    "nb_ebikes": 3,
    "nb_standard_bikes": 5,
    "nb_empty_docks": 2,
}


@pytest.fixture
def status_row() -> dict[str, Any]:
    return dict(STATUS_ROW)
