from __future__ import annotations

import sys
from decimal import Decimal
from pathlib import Path
from typing import List

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from tests.models import CardSecret


@pytest.fixture()
def card_secrets() -> List[CardSecret]:
    return [
        CardSecret(1, "vlfdzepjmlz2y43z7er4", Decimal("20"), True),
        CardSecret(2, "rasefq2rzotsmx526z6g", Decimal("10"), True),
        CardSecret(2, "2ru44qut6neykb2380wt", Decimal("50"), False),
        CardSecret(1, "srcb4c9fdqzuykd6q4zl", Decimal("15"), True),
    ]
