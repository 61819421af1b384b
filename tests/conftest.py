import sys
from pathlib import Path

import pytest

# Ensure the project root (for `algebra`, `main`) and backend/ (for `app`) are importable
_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(_ROOT))
sys.path.insert(0, str(_ROOT / "backend"))

from algebra import storage


@pytest.fixture
def tmp_store(monkeypatch, tmp_path: Path) -> Path:
    """Point the settings/history store at a throwaway file."""
    data_dir = tmp_path / "data"
    data_file = data_dir / "symcore.json"
    monkeypatch.setattr(storage, "_DATA_DIR", str(data_dir))
    monkeypatch.setattr(storage, "_DATA_FILE", str(data_file))
    return data_file
