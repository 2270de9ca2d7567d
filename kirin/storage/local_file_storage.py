"""
Local File System Summary Sink

Writes summary text files and the per-source metadata JSON to a directory on
the local filesystem. Every write goes to a temporary file in the same
directory first and is moved into place with os.replace, so readers never see
a half-written file and rerunning a write simply overwrites it.
"""

import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from kirin.errors import PersistenceFailure
from kirin.models import iso_millis

logger = logging.getLogger(__name__)


class SummaryFileSink:
    """
    Filesystem sink for generated summaries.

    Files land directly under root_dir:
    - <name>.txt files start with a "Generated: <timestamp>" line
    - <source>-metadata.json holds the latest job payload for dashboards
    """

    def __init__(
        self,
        root_dir: Path,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize the sink.

        Args:
            root_dir: Directory that receives the files; created on first write
            clock: Returns the current time; defaults to UTC now
        """
        self.root_dir = Path(root_dir)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def now(self) -> datetime:
        return self._clock()

    def write_summary(self, summary: str, filename: str) -> Path:
        """Write a summary file, replacing any previous file of the same name."""
        content = f"Generated: {iso_millis(self.now())}\n\n{summary}\n"
        path = self._write_atomic(filename, content)
        logger.info(f"Successfully wrote summary to {path}")
        return path

    def write_metadata(self, source: str, payload: Dict[str, Any]) -> Path:
        """Write <source>-metadata.json as pretty-printed JSON."""
        content = json.dumps(payload, indent=2, default=str)
        return self._write_atomic(f"{source}-metadata.json", content)

    def read_text(self, filename: str) -> str:
        try:
            return (self.root_dir / filename).read_text(encoding="utf-8")
        except OSError as e:
            raise PersistenceFailure(f"Failed to read {filename}: {e}") from e

    def _write_atomic(self, filename: str, content: str) -> Path:
        dest_path = self.root_dir / filename
        tmp_name = None
        try:
            self.root_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self.root_dir, prefix=f".{filename}.", suffix=".tmp"
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
            os.replace(tmp_name, dest_path)
        except OSError as e:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            logger.error(f"Error writing {dest_path}: {e}")
            raise PersistenceFailure(f"Failed to write {dest_path}: {e}") from e
        return dest_path
