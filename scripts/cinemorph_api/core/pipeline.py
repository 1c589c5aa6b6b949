"""Local progress tracking for the five labelled generation stages."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Callable, Dict, FrozenSet, List, Optional, Sequence, Tuple

from .contracts import ProcessingStage, StageId, StageStatus
from .errors import StageTransitionError


logger = logging.getLogger(__name__)

StageListener = Callable[[Tuple[ProcessingStage, ...]], None]

STAGE_ORDER: Tuple[StageId, ...] = (
    StageId.ANALYSIS,
    StageId.POSE_MAPPING,
    StageId.RELIGHTING,
    StageId.COMPOSITING,
    StageId.FINAL_RENDER,
)

STAGE_NAMES: Dict[StageId, str] = {
    StageId.ANALYSIS: "Segmentation Engine",
    StageId.POSE_MAPPING: "Hero Replacement",
    StageId.RELIGHTING: "Relighting & Texture",
    StageId.COMPOSITING: "Layout Compositing",
    StageId.FINAL_RENDER: "Final 4K Render",
}

STAGE_PROGRESS: Dict[StageId, str] = {
    StageId.ANALYSIS: "Mapping lighting topology...",
    StageId.POSE_MAPPING: "Skeleton mapping & pose transfer...",
    StageId.RELIGHTING: "Raytraced shadow & skin SSS...",
    StageId.COMPOSITING: "Compositing layout & breathing room...",
    StageId.FINAL_RENDER: "Final 4K texture grading...",
}

TERMINAL_STAGE = StageId.FINAL_RENDER

_TRANSITIONS: Dict[StageStatus, FrozenSet[StageStatus]] = {
    StageStatus.PENDING: frozenset({StageStatus.PROCESSING}),
    StageStatus.PROCESSING: frozenset({StageStatus.COMPLETED, StageStatus.ERROR}),
    StageStatus.COMPLETED: frozenset(),
    StageStatus.ERROR: frozenset(),
}


def is_monotonic(stages: Sequence[ProcessingStage]) -> bool:
    """True when no stage is processing while an earlier one is not completed."""
    for idx, stage in enumerate(stages):
        if stage.status != StageStatus.PROCESSING:
            continue
        if any(prior.status != StageStatus.COMPLETED for prior in stages[:idx]):
            return False
    return True


def initial_stages() -> Tuple[ProcessingStage, ...]:
    return tuple(
        ProcessingStage(
            id=stage_id,
            name=STAGE_NAMES[stage_id],
            details="Waiting for inputs" if stage_id == StageId.ANALYSIS else None,
        )
        for stage_id in STAGE_ORDER
    )


class Pipeline:
    """Explicit state machine over the fixed stage list.

    Stages move ``pending -> processing -> completed | error`` strictly left to
    right. ``reset_for_generation`` and ``begin_refinement`` are the only ways a
    finished stage goes back to ``pending``.
    """

    def __init__(self, listeners: Optional[Sequence[StageListener]] = None) -> None:
        self._stages: List[ProcessingStage] = list(initial_stages())
        self._listeners: List[StageListener] = list(listeners or [])

    @property
    def stages(self) -> Tuple[ProcessingStage, ...]:
        return tuple(self._stages)

    @property
    def in_flight(self) -> bool:
        return any(stage.status == StageStatus.PROCESSING for stage in self._stages)

    def subscribe(self, listener: StageListener) -> None:
        self._listeners.append(listener)

    def get(self, stage_id: StageId) -> ProcessingStage:
        return self._stages[self._index(stage_id)]

    def status(self, stage_id: StageId) -> StageStatus:
        return self.get(stage_id).status

    def reset_for_generation(self, keep_analysis: bool = False) -> None:
        stages: List[ProcessingStage] = []
        for stage in self._stages:
            if (
                stage.id == StageId.ANALYSIS
                and keep_analysis
                and stage.status == StageStatus.COMPLETED
            ):
                stages.append(stage)
                continue
            stages.append(replace(stage, status=StageStatus.PENDING, details=None))
        self._stages = stages
        self._notify()

    def begin_analysis(self) -> None:
        """Restart only the analysis stage; later stages keep their status."""
        idx = self._index(StageId.ANALYSIS)
        stage = self._stages[idx]
        if stage.status == StageStatus.PROCESSING:
            raise StageTransitionError("Analysis is already processing.")
        self._stages[idx] = replace(stage, status=StageStatus.PENDING, details=None)
        self.start(StageId.ANALYSIS, STAGE_PROGRESS[StageId.ANALYSIS])

    def start(self, stage_id: StageId, details: Optional[str] = None) -> None:
        idx = self._index(stage_id)
        blocking = [s for s in self._stages[:idx] if s.status != StageStatus.COMPLETED]
        if blocking:
            raise StageTransitionError(
                f"Cannot start {stage_id.value}: {blocking[0].id.value} is {blocking[0].status.value}."
            )
        self._transition(idx, StageStatus.PROCESSING, details)

    def complete(self, stage_id: StageId, details: Optional[str] = None) -> None:
        self._transition(self._index(stage_id), StageStatus.COMPLETED, details)

    def fail(self, stage_id: StageId, details: Optional[str] = None) -> None:
        self._transition(self._index(stage_id), StageStatus.ERROR, details)

    def skip(self, stage_id: StageId, details: Optional[str] = None) -> None:
        self.start(stage_id, details)
        self.complete(stage_id, details)

    def advance(self, stage_id: StageId, details: Optional[str] = None) -> None:
        self.start(stage_id, details or STAGE_PROGRESS[stage_id])
        self.complete(stage_id)

    def begin_refinement(self, details: Optional[str] = None) -> None:
        """Reopen the terminal stage; stages before it are left untouched."""
        idx = self._index(TERMINAL_STAGE)
        terminal = self._stages[idx]
        if terminal.status == StageStatus.PROCESSING:
            raise StageTransitionError("Final render is already processing.")
        self._stages[idx] = replace(terminal, status=StageStatus.PENDING, details=None)
        self.start(TERMINAL_STAGE, details)

    def current(self) -> Optional[ProcessingStage]:
        for stage in self._stages:
            if stage.status == StageStatus.PROCESSING:
                return stage
        return None

    def _index(self, stage_id: StageId) -> int:
        return STAGE_ORDER.index(StageId(stage_id))

    def _transition(self, idx: int, status: StageStatus, details: Optional[str]) -> None:
        stage = self._stages[idx]
        if status not in _TRANSITIONS[stage.status]:
            raise StageTransitionError(
                f"Illegal transition for {stage.id.value}: {stage.status.value} -> {status.value}."
            )
        self._stages[idx] = replace(stage, status=status, details=details)
        logger.debug("stage %s -> %s (%s)", stage.id.value, status.value, details or "")
        self._notify()

    def _notify(self) -> None:
        snapshot = self.stages
        for listener in self._listeners:
            listener(snapshot)
