"""
Vault adapter: item ids are markdown file paths relative to a vault root.
"""

import logging
from pathlib import Path

from mneme.domain.constants import ITEM_EXTENSIONS
from mneme.domain.schedule.ports import ItemExistenceCheck

logger = logging.getLogger(__name__)


class VaultItemCheck(ItemExistenceCheck):
    """
    An item exists when ``root / item_id`` is a markdown file inside the root.

    Ids that escape the root (``../x.md``, absolute paths elsewhere) never exist.
    """

    def __init__(self, root: Path, extensions: tuple[str, ...] = ITEM_EXTENSIONS):
        self.root = root.expanduser().resolve()
        self.extensions = extensions

    def exists(self, item_id: str) -> bool:
        candidate = (self.root / item_id).resolve()
        try:
            candidate.relative_to(self.root)
        except ValueError:
            logger.debug(f"{item_id} is outside the vault {self.root}")
            return False
        return candidate.is_file() and candidate.suffix.lower() in self.extensions

    def list_items(self) -> list[str]:
        """Every item id in the vault, as POSIX paths relative to the root."""
        if not self.root.is_dir():
            return []
        return sorted(
            p.relative_to(self.root).as_posix()
            for p in self.root.rglob("*")
            if p.is_file()
            and p.suffix.lower() in self.extensions
            and not any(part.startswith(".") for part in p.relative_to(self.root).parts)
        )
