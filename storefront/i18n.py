import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from storefront import settings

logger = logging.getLogger(__name__)

TRANSLATIONS_DIR = Path(__file__).resolve().parent / "translations"


class I18n:
    def __init__(self, default_language: str = settings.DEFAULT_LANG, directory: Path = TRANSLATIONS_DIR):
        self.default_language = default_language
        self.directory = directory
        self.translations: Dict[str, Dict[str, Any]] = {}
        self.load_translations()

    def load_translations(self) -> None:
        if not self.directory.exists():
            logger.warning("translations directory %s not found", self.directory)
            return

        for path in sorted(self.directory.glob("*.json")):
            try:
                with path.open("r", encoding="utf-8") as f:
                    self.translations[path.stem] = json.load(f)
            except (OSError, ValueError):
                logger.exception("failed to load translations for %s", path.stem)

    def _lookup(self, language: str, key: str) -> Optional[str]:
        node: Any = self.translations.get(language, {})
        for part in key.split("."):
            if isinstance(node, dict) and part in node:
                node = node[part]
            else:
                return None
        return node if isinstance(node, str) else None

    def t(self, key: str, lang: Optional[str] = None, **kwargs) -> str:
        """Translate ``key``; falls back to the default language, then the key itself."""
        language = resolve_lang(lang)
        text = self._lookup(language, key)
        if text is None and language != self.default_language:
            text = self._lookup(self.default_language, key)
        if text is None:
            return key
        if kwargs:
            try:
                return text.format(**kwargs)
            except (KeyError, IndexError):
                logger.warning("missing placeholder for %s (%s)", key, language)
        return text


def resolve_lang(lang: Optional[str]) -> str:
    if not lang:
        return settings.DEFAULT_LANG
    lang = lang.strip().lower()[:2]
    return lang if lang in settings.SUPPORTED_LANGS else settings.DEFAULT_LANG


i18n = I18n()


def t(key: str, lang: Optional[str] = None, **kwargs) -> str:
    return i18n.t(key, lang, **kwargs)
