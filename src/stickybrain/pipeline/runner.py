"""Drive the fixed sequence of pipeline stages over one state."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Mapping, Sequence

from stickybrain.pipeline import stages
from stickybrain.pipeline.stages import PipelineContext
from stickybrain.pipeline.state import PipelineState
from stickybrain.protocol import IncrementalUpdateMessage, PipelineResult, RunMessage

LOGGER = logging.getLogger(__name__)

StageFn = Callable[[PipelineState, PipelineContext], Awaitable[Mapping[str, Any]]]
Emit = Callable[[Dict[str, Any]], None]


@dataclass(frozen=True, slots=True)
class Stage:
    name: str
    run: StageFn
    # State fields sent to the host as an incremental update once the stage finishes.
    emits: tuple[str, ...] = ()


DEFAULT_STAGES: tuple[Stage, ...] = (
    Stage("embed", stages.embed),
    Stage("retrieve", stages.retrieve),
    Stage("filter", stages.filter_snippets),
    Stage("summarize", stages.summarize, emits=("snippets", "summary")),
    Stage("generate_search_prompt", stages.generate_search_prompt),
    Stage(
        "execute_search",
        stages.execute_search,
        emits=("web_search_prompt", "web_search_results"),
    ),
    Stage("select_pages", stages.select_pages),
    Stage("scrape", stages.scrape),
    Stage("summarize_pages", stages.summarize_pages, emits=("web_search_results",)),
    Stage("synthesize", stages.synthesize),
)


class Pipeline:
    """Runs each stage in order, merging partial outputs and emitting updates."""

    def __init__(
        self,
        context: PipelineContext,
        *,
        similarity_threshold: float = 0.75,
        top_k: int = 10,
        stages: Sequence[Stage] = DEFAULT_STAGES,
    ) -> None:
        self.context = context
        self.similarity_threshold = similarity_threshold
        self.top_k = top_k
        self.stages = tuple(stages)

    @property
    def stage_names(self) -> list[str]:
        return [stage.name for stage in self.stages]

    async def run(self, request: RunMessage, *, emit: Emit | None = None) -> PipelineResult:
        state = PipelineState.from_request(
            request, similarity_threshold=self.similarity_threshold, top_k=self.top_k
        )
        LOGGER.info("Pipeline started for %s (%d chars)", request.source_path, len(request.paragraph))

        for stage in self.stages:
            started = time.perf_counter()
            partial = await stage.run(state, self.context)
            state.apply(partial)
            LOGGER.debug("Stage %s finished in %.2fs", stage.name, time.perf_counter() - started)
            if stage.emits and emit is not None:
                emit(IncrementalUpdateMessage(update=state.view(stage.emits)).to_wire())

        if state.fallbacks:
            LOGGER.info("Pipeline finished with fallbacks: %s", ", ".join(state.fallbacks))
        return state.to_result()
