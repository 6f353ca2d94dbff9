"""Path helpers for the local data directory."""
from __future__ import annotations

from pathlib import Path


class DataLayout:
    """Computes structured output paths inside the data root."""

    def __init__(self, *, root: Path, reports: Path, metrics: Path) -> None:
        self.root = root
        self.reports = reports
        self.metrics = metrics
        for path in (root, reports, metrics):
            path.mkdir(parents=True, exist_ok=True)

    @classmethod
    def from_settings(cls, settings: dict) -> "DataLayout":
        app = settings["app"]
        root = Path(app["data_root"])
        return cls(
            root=root,
            reports=Path(app.get("reports_dir") or root / "reports"),
            metrics=Path(app.get("metrics_dir") or root / "metrics"),
        )

    def catalog_sqlite(self) -> Path:
        """Return the SQLite file holding the catalog and audit tables."""
        return self.root / "catalog.db"
