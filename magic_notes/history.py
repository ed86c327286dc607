import json
import logging
import time
from datetime import datetime
from typing import List, Optional

from pydantic import ValidationError

from .models import FullAnalysis, HistoryItem
from .storage import KeyValueStore

logger = logging.getLogger(__name__)

HISTORY_KEY = "analysisHistory"


class HistoryStore:
    """Most-recent-first list of completed analyses kept in a key-value store."""

    def __init__(self, store: KeyValueStore, key: str = HISTORY_KEY):
        self.store = store
        self.key = key

    def load(self) -> List[HistoryItem]:
        """
        Load the persisted history.

        Missing or corrupt data yields an empty list; individual entries that
        no longer match the HistoryItem shape are skipped.
        """
        raw = self.store.get(self.key)
        if not raw:
            return []
        try:
            data = json.loads(raw)
        except ValueError as e:
            logger.warning(f"History data is corrupt, starting empty: {e}")
            return []
        if not isinstance(data, list):
            logger.warning("History data is not a list, starting empty")
            return []

        items: List[HistoryItem] = []
        for entry in data:
            try:
                items.append(HistoryItem.model_validate(entry))
            except ValidationError as e:
                logger.warning(f"Skipping invalid history entry: {e.error_count()} errors")
        return items

    def _save(self, items: List[HistoryItem]) -> None:
        payload = json.dumps([item.model_dump(mode="json") for item in items], ensure_ascii=False)
        self.store.set(self.key, payload)

    def append(self, item: HistoryItem) -> List[HistoryItem]:
        """Prepend an item and persist the list."""
        items = [item] + self.load()
        self._save(items)
        logger.info(f"Saved analysis '{item.title}' to history ({len(items)} items)")
        return items

    def clear(self) -> None:
        self.store.delete(self.key)
        logger.info("History cleared")

    def get(self, item_id: int) -> Optional[HistoryItem]:
        for item in self.load():
            if item.id == item_id:
                return item
        return None

    def new_item(self, analysis: FullAnalysis, title: str, source: str) -> HistoryItem:
        """Create and store a history item for a finished analysis."""
        now = datetime.now()
        item_id = int(time.time() * 1000)
        existing = self.load()
        if existing:
            item_id = max(item_id, max(i.id for i in existing) + 1)

        item = HistoryItem(
            id=item_id,
            title=title,
            date=now.astimezone().isoformat(),
            analysis=analysis,
            source=source,
        )
        self.append(item)
        return item
