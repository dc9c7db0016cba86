"""
JSON State Repository. Infrastructure adapter for a single JSON data file.

Implements StateRepository on top of the persisted layout in ``codec``.
"""

import json
import logging
import os
import tempfile
from pathlib import Path

from mneme.domain.constants import HISTORY_LIMIT
from mneme.domain.schedule.models import SchedulerState
from mneme.domain.schedule.ports import StateRepository

from .codec import decode_state, encode_state

logger = logging.getLogger(__name__)


class JsonStateRepository(StateRepository):
    """
    Loads and saves scheduler state as one JSON document.

    A missing file loads as empty state. A file that is not valid JSON also
    loads as empty state, with an error logged. The broken file stays in place
    until the next save, which first moves it aside to ``<name>.corrupt``.
    """

    def __init__(self, path: Path, history_limit: int = HISTORY_LIMIT):
        self.path = path
        self.history_limit = history_limit
        self._unreadable = False

    def load(self) -> SchedulerState:
        if not self.path.exists():
            logger.debug(f"No data file at {self.path}; starting empty")
            return SchedulerState()

        text = self.path.read_text(encoding="utf-8")
        try:
            document = json.loads(text)
        except json.JSONDecodeError as e:
            logger.error(f"Could not parse {self.path}: {e}")
            self._unreadable = True
            return SchedulerState()
        if not isinstance(document, dict):
            logger.error(f"Could not parse {self.path}: expected a JSON object")
            self._unreadable = True
            return SchedulerState()

        state = decode_state(document, history_limit=self.history_limit)
        logger.debug(f"Loaded {len(state.schedules)} schedules from {self.path}")
        return state

    def save(self, state: SchedulerState) -> None:
        """Write atomically: a temp file in the same directory, then rename."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        if self._unreadable:
            self._set_aside()
        payload = json.dumps(encode_state(state), indent=2, ensure_ascii=False)

        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.debug(f"Saved {len(state.schedules)} schedules to {self.path}")

    def _set_aside(self) -> None:
        """Move an unparsable data file out of the way of the next write."""
        if self.path.exists():
            backup = self.path.with_name(f"{self.path.name}.corrupt")
            n = 1
            while backup.exists():
                backup = self.path.with_name(f"{self.path.name}.corrupt.{n}")
                n += 1
            os.replace(self.path, backup)
            logger.warning(f"Moved unreadable {self.path} to {backup}")
        self._unreadable = False
