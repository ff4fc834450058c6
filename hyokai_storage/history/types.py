"""
History types.

Stored JSON keeps the field names the web client has always written
(``taskMode``, ``modelName``, ``elapsedTime`` ...) so existing local
ledgers load unchanged. Remote rows use snake_case column names.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any


class TaskMode(str, Enum):
    """What the user asked the transformer to produce."""

    CODING = "coding"
    PROMPTING = "prompting"


@dataclass
class ModelOutput:
    """One model's outcome inside a comparison run."""

    model_name: str
    model_provider: str
    output: str | None = None
    error: str | None = None
    elapsed_time: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "modelName": self.model_name,
            "modelProvider": self.model_provider,
            "output": self.output,
            "error": self.error,
            "elapsedTime": self.elapsed_time,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ModelOutput:
        if not isinstance(data, dict):
            raise TypeError(f"Expected a model output object, got {type(data).__name__}")
        return cls(
            model_name=data["modelName"],
            model_provider=data["modelProvider"],
            output=data.get("output"),
            error=data.get("error"),
            elapsed_time=data.get("elapsedTime"),
        )


@dataclass
class SingleModelResult:
    """Result of a transformation run against one model."""

    model_name: str
    model_provider: str
    output: str
    elapsed_time: float | None = None
    applied_instructions: list[str] | None = None


@dataclass
class CompareModelResult:
    """Result of a transformation run against several models side by side."""

    results: list[ModelOutput] = field(default_factory=list)
    applied_instructions: list[str] | None = None


HistoryResult = SingleModelResult | CompareModelResult


def result_to_dict(result: HistoryResult) -> dict[str, Any]:
    """Serialize a result with its ``type`` tag."""
    match result:
        case SingleModelResult():
            data: dict[str, Any] = {
                "type": "single",
                "modelName": result.model_name,
                "modelProvider": result.model_provider,
                "output": result.output,
                "elapsedTime": result.elapsed_time,
            }
        case CompareModelResult():
            data = {
                "type": "compare",
                "results": [r.to_dict() for r in result.results],
            }
        case _:
            raise TypeError(f"Unknown history result: {type(result).__name__}")
    if result.applied_instructions:
        data["appliedInstructions"] = list(result.applied_instructions)
    return data


def result_from_dict(data: dict[str, Any]) -> HistoryResult:
    """Deserialize a tagged result.

    Raises:
        TypeError: If the payload is not an object
        ValueError: If the tag is missing or unknown
    """
    if not isinstance(data, dict):
        raise TypeError(f"Expected a result object, got {type(data).__name__}")
    applied = data.get("appliedInstructions")
    match data.get("type"):
        case "single":
            return SingleModelResult(
                model_name=data["modelName"],
                model_provider=data["modelProvider"],
                output=data["output"],
                elapsed_time=data.get("elapsedTime"),
                applied_instructions=applied,
            )
        case "compare":
            return CompareModelResult(
                results=[ModelOutput.from_dict(r) for r in data.get("results", [])],
                applied_instructions=applied,
            )
        case other:
            raise ValueError(f"Unknown history result type: {other!r}")


def _iso(timestamp_ms: int) -> str:
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=UTC).isoformat()


@dataclass
class HistoryEntry:
    """An advanced-mode history record."""

    id: str
    timestamp: int
    input: str
    task_mode: TaskMode
    result: HistoryResult

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "input": self.input,
            "taskMode": self.task_mode.value,
            "result": result_to_dict(self.result),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HistoryEntry:
        return cls(
            id=str(data["id"]),
            timestamp=int(data["timestamp"]),
            input=data["input"],
            task_mode=TaskMode(data["taskMode"]),
            result=result_from_dict(data["result"]),
        )

    def to_row(self, user_id: str) -> dict[str, Any]:
        """Remote ``history_entries`` row. Reuses the local id."""
        return {
            "id": self.id,
            "user_id": user_id,
            "timestamp": _iso(self.timestamp),
            "input": self.input,
            "task_mode": self.task_mode.value,
            "result_data": result_to_dict(self.result),
        }


@dataclass
class SimpleHistoryEntry:
    """A beginner-mode history record. Kept apart from HistoryEntry."""

    id: str
    timestamp: int
    input: str
    output: str
    elapsed_time: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "input": self.input,
            "output": self.output,
            "elapsedTime": self.elapsed_time,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SimpleHistoryEntry:
        return cls(
            id=str(data["id"]),
            timestamp=int(data["timestamp"]),
            input=data["input"],
            output=data["output"],
            elapsed_time=data.get("elapsedTime"),
        )

    def to_row(self, user_id: str) -> dict[str, Any]:
        """Remote ``simple_history_entries`` row. Reuses the local id."""
        return {
            "id": self.id,
            "user_id": user_id,
            "timestamp": _iso(self.timestamp),
            "input": self.input,
            "output": self.output,
            "elapsed_time": self.elapsed_time,
        }
