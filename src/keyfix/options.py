"""Run options for the keyfix command line."""

from __future__ import annotations

from pathlib import Path
from typing import List

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .errors import UsageError


class RunOptions(BaseModel):
    """Output switches for one invocation, immutable after validation."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    write: bool = False
    list_only: bool = False
    diff: bool = False
    paths: List[Path] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_combinations(self) -> "RunOptions":
        if self.write and not self.paths:
            raise ValueError("can't use -w on stdin")
        if self.diff and self.list_only:
            raise ValueError("can't combine -d with -l")
        return self

    @property
    def reads_stdin(self) -> bool:
        return not self.paths

    @property
    def emit(self) -> bool:
        """Whether patched bytes must be produced at all."""
        return self.write or self.diff or not self.list_only

    @classmethod
    def build(cls, **values: object) -> "RunOptions":
        """Validate ``values``, raising :class:`UsageError` on rejection."""
        try:
            return cls.model_validate(values)
        except ValidationError as error:
            messages = [str(item.get("ctx", {}).get("error") or item["msg"]) for item in error.errors()]
            raise UsageError("; ".join(messages), details={"errors": messages}) from error


__all__ = ["RunOptions"]
