"""Per-turn bookkeeping for a session: active turn, plan progress and file edits."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)


class ModeKind(enum.Enum):
    """Collaboration mode a turn runs in."""

    DEFAULT = "default"
    PLAN = "plan"


class EditApprovalMode(enum.Enum):
    """Whether file edits are approved automatically or confirmed one by one."""

    AUTO_APPROVE = "auto_approve"
    ASK_EVERY_EDIT = "ask_every_edit"


class FallbackPlanPhase(enum.IntEnum):
    """Phases of the synthetic plan shown when the agent publishes none."""

    PLANNING = 0
    IMPLEMENTING = 1
    VERIFYING = 2
    SUMMARIZING = 3
    DONE = 4


@dataclass
class FallbackPlanState:
    """Progress of the fallback plan for one turn."""

    turn_id: str
    phase: FallbackPlanPhase = FallbackPlanPhase.PLANNING
    saw_tool_activity: bool = False
    steps: list[str] = field(default_factory=list)


@dataclass
class TurnState:
    """Mutable state for the turn in flight, plus what outlives a turn.

    Everything except ``carryover_plan_steps`` and ``replay_turns`` is
    transient and is cleared when a new turn begins.
    """

    active_turn_id: Optional[str] = None
    active_turn_mode_kind: Optional[ModeKind] = None
    active_turn_saw_plan_item: bool = False
    active_turn_saw_plan_delta: bool = False
    started_tool_calls: set[str] = field(default_factory=set)
    completed_turn_ids: set[str] = field(default_factory=set)
    turn_plan_updates_seen: set[str] = field(default_factory=set)
    fallback_plan: Optional[FallbackPlanState] = None
    file_change_locations: dict[str, list[Path]] = field(default_factory=dict)
    file_change_started_changes: dict[str, list[Any]] = field(default_factory=dict)
    file_change_before_contents: dict[str, dict[Path, Optional[str]]] = field(
        default_factory=dict
    )
    latest_turn_diff: Optional[str] = None
    file_change_paths_this_turn: set[Path] = field(default_factory=set)
    synced_paths_this_turn: set[Path] = field(default_factory=set)
    last_plan_steps: list[str] = field(default_factory=list)
    carryover_plan_steps: Optional[list[str]] = None
    replay_turns: list[Any] = field(default_factory=list)

    def reset_turn_transient_state(self) -> None:
        """Clear per-turn state, leaving long-lived session data intact."""
        self.active_turn_id = None
        self.active_turn_mode_kind = None
        self.active_turn_saw_plan_item = False
        self.active_turn_saw_plan_delta = False
        self.started_tool_calls.clear()
        self.completed_turn_ids.clear()
        self.turn_plan_updates_seen.clear()
        self.fallback_plan = None
        self.file_change_locations.clear()
        self.file_change_started_changes.clear()
        self.file_change_before_contents.clear()
        self.latest_turn_diff = None
        self.file_change_paths_this_turn.clear()
        self.synced_paths_this_turn.clear()
        self.last_plan_steps.clear()

    def prepare_for_new_turn(
        self, turn_id: str, collaboration_mode_kind: ModeKind
    ) -> None:
        """Reset transient state and mark `turn_id` as the active turn."""
        if self.active_turn_id is not None and self.active_turn_id != turn_id:
            logger.warning(
                "Starting new turn %s while previous turn %s is still marked active",
                turn_id,
                self.active_turn_id,
            )
        self.reset_turn_transient_state()
        self.active_turn_id = turn_id
        self.active_turn_mode_kind = collaboration_mode_kind

    def finalize_active_turn(self, turn_id: str) -> None:
        """Clear the active turn, warning if `turn_id` is not the active one."""
        if self.active_turn_id != turn_id:
            logger.warning(
                "Finalizing turn %s that does not match the current active turn %s",
                turn_id,
                self.active_turn_id,
            )
        self.active_turn_id = None
        self.active_turn_mode_kind = None