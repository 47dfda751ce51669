"""
Shared data types for the engine.

Dataclasses used by the parsers, the store and the analyzer, kept here to
avoid circular imports.
"""

from dataclasses import dataclass, field


@dataclass
class Question:
    """An open (or answered) question attached to an artifact revision."""
    id: str  # "Q-001"
    question: str
    context: str = ""
    created: str = ""
    answer: str | None = None
    answered: str | None = None
    answered_by: str | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "question": self.question,
            "context": self.context,
            "created": self.created,
            "answer": self.answer,
            "answered": self.answered,
            "answeredBy": self.answered_by,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Question":
        return cls(
            id=data["id"],
            question=data["question"],
            context=data.get("context", ""),
            created=data.get("created", ""),
            answer=data.get("answer"),
            answered=data.get("answered"),
            answered_by=data.get("answeredBy"),
        )


@dataclass
class Requirement:
    """A requirement extracted from a Spec artifact."""
    id: str  # "FR-1", "NFR-3"
    kind: str  # functional, non-functional
    text: str
    line_number: int = 0


@dataclass
class Task:
    """A task extracted from a Tasks artifact."""
    id: str  # "3", "3.1"
    title: str
    requirement_refs: set[str] = field(default_factory=set)
    depends_on: set[str] = field(default_factory=set)
    parallel_eligible: bool = False
    line_number: int = 0
    block_content: str = ""


@dataclass
class TraceabilityEntry:
    """Derived (requirementId, taskIds) pair."""
    requirement_id: str
    task_ids: list[str]


def task_sort_key(task_id: str) -> tuple[int, ...]:
    """Numeric ordering for task ids: 2 < 2.1 < 10."""
    return tuple(int(part) for part in task_id.split("."))


def requirement_sort_key(req_id: str) -> tuple[int, int]:
    """FR ids before NFR ids, then numeric."""
    prefix, _, number = req_id.partition("-")
    return (0 if prefix == "FR" else 1, int(number))
