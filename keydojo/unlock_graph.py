"""Curriculum node reachability.

Evaluation is a pure function of the node's prerequisites, the caller's
completed-node set and the progression snapshot. Malformed nodes are reported
as unreachable rather than raising.
"""

from __future__ import annotations

import logging
from typing import Any, Collection, Dict, Iterable, List, Literal, Mapping, Optional, Union

from pydantic import BaseModel, Field, ValidationError, field_validator

from .progression import ProgressionSnapshot

logger = logging.getLogger(__name__)

UnmetKind = Literal[
    "missing_prerequisite",
    "unknown_prerequisite",
    "insufficient_experience",
    "insufficient_level",
    "malformed_node",
]


class NodePrerequisites(BaseModel):
    previous_node_ids: List[str] = Field(default_factory=list)
    min_experience: Optional[int] = Field(default=None, ge=0)
    min_level: Optional[int] = Field(default=None, ge=1)

    @field_validator("previous_node_ids", mode="before")
    @classmethod
    def _absent_ids(cls, value: Any) -> Any:
        return [] if value is None else value

    def is_empty(self) -> bool:
        return not self.previous_node_ids and self.min_experience is None and self.min_level is None


class CurriculumNode(BaseModel):
    id: str = Field(..., min_length=1)
    kind: Literal["lesson", "module", "challenge"] = "lesson"
    title: Optional[str] = None
    prerequisites: NodePrerequisites = Field(default_factory=NodePrerequisites)

    @field_validator("prerequisites", mode="before")
    @classmethod
    def _absent_prerequisites(cls, value: Any) -> Any:
        return NodePrerequisites() if value is None else value


class UnmetRequirement(BaseModel):
    kind: UnmetKind
    detail: str
    node_id: Optional[str] = None
    required: Optional[int] = None
    actual: Optional[int] = None


class UnlockDecision(BaseModel):
    node_id: Optional[str]
    reachable: bool
    unmet: List[UnmetRequirement] = Field(default_factory=list)

    @property
    def locked_by_prerequisite(self) -> bool:
        return any(
            reason.kind in {"missing_prerequisite", "unknown_prerequisite"} for reason in self.unmet
        )

    @property
    def locked_by_progress(self) -> bool:
        return any(
            reason.kind in {"insufficient_experience", "insufficient_level"} for reason in self.unmet
        )


NodeInput = Union[CurriculumNode, Mapping[str, Any]]


def _coerce_node(node: NodeInput) -> CurriculumNode:
    if isinstance(node, CurriculumNode):
        return node
    return CurriculumNode.model_validate(node)


def _raw_id(node: Any) -> Optional[str]:
    if isinstance(node, Mapping):
        value = node.get("id")
        return value if isinstance(value, str) else None
    return None


def evaluate(
    node: NodeInput,
    snapshot: ProgressionSnapshot,
    completed_node_ids: Collection[str],
    *,
    known_node_ids: Optional[Collection[str]] = None,
) -> UnlockDecision:
    try:
        parsed = _coerce_node(node)
    except (ValidationError, TypeError) as exc:
        logger.warning("Treating malformed curriculum node as locked: %s", exc)
        return UnlockDecision(
            node_id=_raw_id(node),
            reachable=False,
            unmet=[UnmetRequirement(kind="malformed_node", detail="Node definition failed validation.")],
        )

    requirements = parsed.prerequisites
    if requirements.is_empty():
        return UnlockDecision(node_id=parsed.id, reachable=True)

    completed = set(completed_node_ids)
    unmet: List[UnmetRequirement] = []
    for prerequisite_id in requirements.previous_node_ids:
        if prerequisite_id == parsed.id or (known_node_ids is not None and prerequisite_id not in known_node_ids):
            unmet.append(
                UnmetRequirement(
                    kind="unknown_prerequisite",
                    node_id=prerequisite_id,
                    detail=f"Prerequisite '{prerequisite_id}' does not reference a valid node.",
                )
            )
        elif prerequisite_id not in completed:
            unmet.append(
                UnmetRequirement(
                    kind="missing_prerequisite",
                    node_id=prerequisite_id,
                    detail=f"Complete '{prerequisite_id}' first.",
                )
            )

    total = snapshot.total_experience
    if requirements.min_experience is not None and total < requirements.min_experience:
        unmet.append(
            UnmetRequirement(
                kind="insufficient_experience",
                required=requirements.min_experience,
                actual=total,
                detail=f"Requires {requirements.min_experience} XP.",
            )
        )

    level = snapshot.level
    if requirements.min_level is not None and level < requirements.min_level:
        unmet.append(
            UnmetRequirement(
                kind="insufficient_level",
                required=requirements.min_level,
                actual=level,
                detail=f"Requires level {requirements.min_level}.",
            )
        )

    return UnlockDecision(node_id=parsed.id, reachable=not unmet, unmet=unmet)


def is_reachable(
    node: NodeInput,
    snapshot: ProgressionSnapshot,
    completed_node_ids: Collection[str],
    *,
    known_node_ids: Optional[Collection[str]] = None,
) -> bool:
    return evaluate(node, snapshot, completed_node_ids, known_node_ids=known_node_ids).reachable


def evaluate_curriculum(
    nodes: Iterable[NodeInput],
    snapshot: ProgressionSnapshot,
    completed_node_ids: Collection[str],
) -> Dict[str, UnlockDecision]:
    """Evaluate every node, validating prerequisite ids against the supplied nodes."""
    node_list = list(nodes)
    known: set[str] = set()
    for node in node_list:
        node_id = node.id if isinstance(node, CurriculumNode) else _raw_id(node)
        if node_id:
            known.add(node_id)

    decisions: Dict[str, UnlockDecision] = {}
    for index, node in enumerate(node_list):
        decision = evaluate(node, snapshot, completed_node_ids, known_node_ids=known)
        key = decision.node_id or f"#{index}"
        decisions[key] = decision
    return decisions


__all__ = [
    "CurriculumNode",
    "NodePrerequisites",
    "UnlockDecision",
    "UnmetRequirement",
    "evaluate",
    "evaluate_curriculum",
    "is_reachable",
]
