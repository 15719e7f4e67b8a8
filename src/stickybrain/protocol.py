"""Host <-> worker message envelope.

Every message crossing the worker pipe is a plain ``dict`` produced by
``model_dump(mode="json", by_alias=True)``, so payloads stay JSON-serialisable
and use camelCase field names on the wire.
"""

from __future__ import annotations

from typing import Annotated, Any, Dict, List, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Snippet(WireModel):
    id: str
    title: str
    content: str
    similarity: float = Field(ge=0.0, le=1.0)
    source_path: str


class WebSearchResult(WireModel):
    query: str
    title: str
    url: str
    description: str = ""
    source: str | None = None
    selected_for_scraping: bool | None = None
    scraped_content: str | None = None
    scraping_error: str | None = None
    page_summary: str | None = None
    summary_error: str | None = None

    def merge(self, **updates: Any) -> WebSearchResult:
        """Set new fields in place. ``None`` values never clear a field."""
        for key, value in updates.items():
            if key not in type(self).model_fields:
                raise AttributeError(f"Unknown search result field: {key}")
            if value is not None:
                setattr(self, key, value)
        return self


class PipelineResult(WireModel):
    snippets: List[Snippet] = Field(default_factory=list)
    summary: str = ""
    web_search_prompt: str | None = None
    web_search_results: List[WebSearchResult] | None = None
    synthesis: str | None = None
    paragraph: str | None = None

    def merge(self, update: PipelineResult | Dict[str, Any]) -> PipelineResult:
        """Fold an incremental update into this result.

        Only fields present in the update are applied; ``None`` is treated as
        absent so later updates cannot erase earlier ones.
        """
        if not isinstance(update, PipelineResult):
            update = PipelineResult.model_validate(update)
        for name in update.model_fields_set:
            value = getattr(update, name)
            if value is not None:
                setattr(self, name, value)
        return self


class RunMessage(WireModel):
    type: Literal["run"] = "run"
    paragraph: str
    source_path: str
    user_goals: str = ""


class ResultMessage(WireModel):
    type: Literal["result"] = "result"
    result: PipelineResult


class IncrementalUpdateMessage(WireModel):
    type: Literal["incremental-update"] = "incremental-update"
    update: PipelineResult

    def to_wire(self) -> Dict[str, Any]:
        # Only the fields a stage produced; defaults would overwrite the host's copy.
        return {
            "type": self.type,
            "update": self.update.model_dump(
                mode="json", by_alias=True, exclude_unset=True, exclude_none=True
            ),
        }


class ErrorMessage(WireModel):
    type: Literal["error"] = "error"
    message: str


Message = Annotated[
    Union[RunMessage, ResultMessage, IncrementalUpdateMessage, ErrorMessage],
    Field(discriminator="type"),
]

_MESSAGE_ADAPTER: TypeAdapter[Message] = TypeAdapter(Message)


def parse_message(payload: Dict[str, Any]) -> Message:
    """Validate a raw pipe payload into its message model."""
    return _MESSAGE_ADAPTER.validate_python(payload)
