"""
Failover task state

A single ``FailoverTaskRecord`` lives in cloud storage and is overwritten on
every attempt.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from cloudfailover.providers.operations import FailoverOperations


class TaskState(str, Enum):
    """Failover task states."""

    NEVER_RUN = "NEVER_RUN"
    RUN = "RUN"
    PASS = "PASS"
    FAIL = "FAIL"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskState.PASS, TaskState.FAIL)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FailoverTaskRecord(BaseModel):
    """The durable record of the latest failover attempt."""

    model_config = ConfigDict(populate_by_name=True)

    task_state: TaskState = Field(default=TaskState.NEVER_RUN, alias="taskState")
    message: str = ""
    timestamp: datetime = Field(default_factory=utcnow)
    instance: str = ""
    failover_operations: FailoverOperations = Field(
        default_factory=FailoverOperations, alias="failoverOperations"
    )

    def to_dict(self) -> dict[str, Any]:
        data = self.model_dump(by_alias=True, mode="json", exclude={"failover_operations"})
        data["failoverOperations"] = self.failover_operations.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> FailoverTaskRecord:
        """Parse a stored record; an empty document means no attempt yet."""
        if not data:
            return cls(task_state=TaskState.NEVER_RUN)
        data = dict(data)
        data["failoverOperations"] = FailoverOperations.from_dict(
            data.get("failoverOperations")
        )
        return cls.model_validate(data)

    def age_seconds(self, now: datetime | None = None) -> float:
        timestamp = self.timestamp
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)
        return ((now or utcnow()) - timestamp).total_seconds()
