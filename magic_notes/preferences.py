import logging
from typing import Optional

from .models import DEFAULT_FONT_SIZE, MAX_FONT_SIZE, MIN_FONT_SIZE, Preferences
from .storage import KeyValueStore

logger = logging.getLogger(__name__)

THEME_KEY = "theme"
FONT_SIZE_KEY = "fontSize"
FONT_SIZE_STEP = 1


class PreferencesStore:
    """Theme and font size, loaded on start and persisted on every change."""

    def __init__(self, store: KeyValueStore, default_theme: str = "light"):
        self.store = store
        self.preferences = self._load(default_theme)

    def _load(self, default_theme: str) -> Preferences:
        theme = self.store.get(THEME_KEY)
        if theme not in ("light", "dark"):
            theme = default_theme

        font_size = DEFAULT_FONT_SIZE
        raw_size = self.store.get(FONT_SIZE_KEY)
        if raw_size:
            try:
                font_size = int(raw_size)
            except ValueError:
                logger.warning(f"Ignoring invalid font size preference: {raw_size!r}")
        font_size = min(max(font_size, MIN_FONT_SIZE), MAX_FONT_SIZE)

        return Preferences(theme=theme, font_size=font_size)

    def _persist(self) -> None:
        self.store.set(THEME_KEY, self.preferences.theme)
        self.store.set(FONT_SIZE_KEY, str(self.preferences.font_size))

    def update(self, theme: Optional[str] = None, font_size: Optional[int] = None) -> Preferences:
        values = self.preferences.model_dump()
        if theme is not None:
            values["theme"] = theme
        if font_size is not None:
            values["font_size"] = min(max(font_size, MIN_FONT_SIZE), MAX_FONT_SIZE)
        self.preferences = Preferences.model_validate(values)
        self._persist()
        return self.preferences

    def toggle_theme(self) -> Preferences:
        return self.update(theme="dark" if self.preferences.theme == "light" else "light")

    def increase_font_size(self) -> Preferences:
        return self.update(font_size=self.preferences.font_size + FONT_SIZE_STEP)

    def decrease_font_size(self) -> Preferences:
        return self.update(font_size=self.preferences.font_size - FONT_SIZE_STEP)
