"""Application configuration defaults."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Literal

from stickybrain.embedding.encoder import DEFAULT_DIMENSION, DEFAULT_MODEL

LOGGER = logging.getLogger(__name__)

COLLECTION_NAME = "stickies_rag_v1"

EmbeddingBackend = Literal["sentence-transformers", "openai", "hash"]


def _get_default_watch_dir() -> Path:
    """Locate the Stickies container, or a local ``test-stickies`` folder."""
    stickies = (
        Path.home() / "Library" / "Containers" / "com.apple.Stickies" / "Data" / "Library" / "Stickies"
    )
    if stickies.exists():
        return stickies
    return Path("test-stickies")


def _get_default_goals_path() -> Path:
    return Path.home() / ".stickybrain" / "goals.txt"


@dataclass(slots=True)
class AppConfig:
    watch_dir: Path | None = None
    corpus_dir: Path | None = None
    goals_path: Path | None = None

    chroma_host: str | None = None
    chroma_port: int = 8000
    collection_name: str = COLLECTION_NAME

    embedding_backend: EmbeddingBackend = "sentence-transformers"
    model_name: str = DEFAULT_MODEL
    embedding_dimension: int = DEFAULT_DIMENSION
    embedding_batch_size: int = 16
    embedding_device: str | None = None
    openai_api_key: str | None = None
    openai_base_url: str | None = None
    openai_embedding_model: str = "text-embedding-3-small"
    chat_model: str = "gpt-4o-mini"
    brave_api_key: str | None = None

    similarity_threshold: float = 0.75
    top_k: int = 10
    debounce_seconds: float = 0.2
    poll_interval: float = 0.5
    search_delay: float = 1.0
    max_queries: int = 3
    results_per_query: int = 5
    pages_to_scrape: int = 2
    scrape_timeout: float = 10.0
    max_page_chars: int = 8000

    def __post_init__(self) -> None:
        if self.watch_dir is None:
            self.watch_dir = _get_default_watch_dir()
        if self.corpus_dir is None:
            self.corpus_dir = self.watch_dir
        if self.goals_path is None:
            self.goals_path = _get_default_goals_path()

    @classmethod
    def from_env(cls, **overrides: object) -> AppConfig:
        """Build a config from ``STICKYBRAIN_*`` environment variables.

        Provider credentials fall back to their conventional variable names
        (``OPENAI_API_KEY``, ``BRAVE_API_KEY``, ``CHROMA_HOST``). Explicit
        keyword overrides win over the environment; ``None`` overrides are
        ignored so CLI options can be passed through unconditionally.
        """
        values: dict[str, object] = {}
        for item in fields(cls):
            raw = os.getenv(f"STICKYBRAIN_{item.name.upper()}")
            if raw is not None and raw != "":
                values[item.name] = _coerce(item.name, raw)

        values.setdefault("openai_api_key", os.getenv("OPENAI_API_KEY") or None)
        values.setdefault("openai_base_url", os.getenv("OPENAI_BASE_URL") or None)
        values.setdefault("brave_api_key", os.getenv("BRAVE_API_KEY") or None)
        values.setdefault("chroma_host", os.getenv("CHROMA_HOST") or None)
        if "chroma_port" not in values and os.getenv("CHROMA_PORT"):
            values["chroma_port"] = int(os.environ["CHROMA_PORT"])

        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls(**values)  # type: ignore[arg-type]

    def load_goals(self) -> str:
        """Return the saved user goals, or an empty string.

        An unreadable goals file is logged and treated as empty.
        """
        path = Path(self.goals_path)
        try:
            return path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return ""
        except (OSError, UnicodeDecodeError) as exc:
            LOGGER.warning("Unable to read goals from %s: %s", path, exc)
            return ""

    def save_goals(self, goals: str) -> None:
        path = Path(self.goals_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(goals.strip() + "\n", encoding="utf-8")


_PATH_FIELDS = {"watch_dir", "corpus_dir", "goals_path"}
_INT_FIELDS = {
    "chroma_port",
    "embedding_dimension",
    "embedding_batch_size",
    "top_k",
    "max_queries",
    "results_per_query",
    "pages_to_scrape",
    "max_page_chars",
}
_FLOAT_FIELDS = {
    "similarity_threshold",
    "debounce_seconds",
    "poll_interval",
    "search_delay",
    "scrape_timeout",
}


def _coerce(name: str, raw: str) -> object:
    if name in _PATH_FIELDS:
        return Path(raw).expanduser()
    if name in _INT_FIELDS:
        return int(raw)
    if name in _FLOAT_FIELDS:
        return float(raw)
    return raw
