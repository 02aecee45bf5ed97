from __future__ import annotations

from pathlib import Path
import sys

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))
# Test helpers such as fake_registry live next to the tests
sys.path.insert(0, str(ROOT / "tests"))
