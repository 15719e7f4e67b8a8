"""Per-request pipeline state."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any, Iterable, List, Mapping

from stickybrain.models import IndexHit
from stickybrain.protocol import PipelineResult, RunMessage, Snippet, WebSearchResult
from stickybrain.utils.files import document_root

# Set when the state is created; stages may read them but never write them.
CONFIG_FIELDS = frozenset(
    {"paragraph", "source_path", "user_goals", "similarity_threshold", "top_k", "exclude_path"}
)


class PipelineStateError(RuntimeError):
    """A stage tried to rewrite configuration or erase an earlier stage's output."""


@dataclass
class PipelineState:
    paragraph: str
    source_path: str
    user_goals: str = ""
    similarity_threshold: float = 0.75
    top_k: int = 10
    exclude_path: str = ""

    embedding: List[float] | None = None
    hits: List[IndexHit] | None = None
    snippets: List[Snippet] | None = None
    summary: str | None = None
    web_search_queries: List[str] | None = None
    web_search_prompt: str | None = None
    web_search_results: List[WebSearchResult] | None = None
    synthesis: str | None = None
    fallbacks: List[str] = field(default_factory=list)

    @classmethod
    def from_request(
        cls, request: RunMessage, *, similarity_threshold: float, top_k: int
    ) -> PipelineState:
        return cls(
            paragraph=request.paragraph,
            source_path=request.source_path,
            user_goals=request.user_goals,
            similarity_threshold=similarity_threshold,
            top_k=top_k,
            exclude_path=str(document_root(request.source_path)) if request.source_path else "",
        )

    def apply(self, partial: Mapping[str, Any]) -> None:
        """Merge a stage's output into the state.

        ``fallbacks`` is appended to rather than replaced.
        """
        known = {item.name for item in fields(self)}
        for key, value in partial.items():
            if key not in known:
                raise PipelineStateError(f"unknown state field: {key}")
            if key in CONFIG_FIELDS:
                raise PipelineStateError(f"{key} is fixed for the lifetime of a request")
            if key == "fallbacks":
                self.fallbacks.extend(name for name in value if name not in self.fallbacks)
                continue
            if value is None:
                if getattr(self, key) is not None:
                    raise PipelineStateError(f"stage attempted to erase {key}")
                continue
            setattr(self, key, value)

    def used_fallback(self, stage: str) -> bool:
        return stage in self.fallbacks

    def view(self, names: Iterable[str]) -> PipelineResult:
        """A partial result holding only ``names`` (for incremental updates)."""
        values = {name: getattr(self, name) for name in names}
        return PipelineResult(**{name: value for name, value in values.items() if value is not None})

    def to_result(self) -> PipelineResult:
        return PipelineResult(
            snippets=self.snippets or [],
            summary=self.summary or "",
            web_search_prompt=self.web_search_prompt,
            web_search_results=self.web_search_results,
            synthesis=self.synthesis,
            paragraph=self.paragraph,
        )
