from __future__ import annotations

import traceback
from dataclasses import dataclass, replace
from enum import IntEnum
from typing import Any, Dict, Mapping, Optional

# Marks records that went through the pending queue before being sent.
PROVENANCE_KEY = "isCaughtInQueue"
PROVENANCE_VALUE = "Yes"


class SeverityLevel(IntEnum):
    Verbose = 0
    Information = 1
    Warning = 2
    Error = 3
    Critical = 4

    @classmethod
    def from_any(cls, v: Any) -> "SeverityLevel":
        """Accept an enum, its int value or its (case-insensitive) name; default Information."""
        if isinstance(v, cls):
            return v
        if isinstance(v, int) and not isinstance(v, bool):
            try:
                return cls(v)
            except ValueError:
                return cls.Information
        if isinstance(v, str):
            name = v.strip().lower()
            for member in cls:
                if member.name.lower() == name:
                    return member
        return cls.Information


@dataclass(frozen=True, slots=True)
class ExceptionRecord:
    """One exception waiting for (or on its way to) the telemetry backend."""

    error: BaseException
    severity_level: SeverityLevel = SeverityLevel.Information
    properties: Optional[Mapping[str, Any]] = None

    @classmethod
    def build(
        cls,
        error: Any,
        severity_level: Any = SeverityLevel.Information,
        properties: Optional[Mapping[str, Any]] = None,
    ) -> "ExceptionRecord":
        """Normalize loosely-typed `log_exception` arguments into a record."""
        if not isinstance(error, BaseException):
            error = Exception(str(error))
        return cls(error=error, severity_level=SeverityLevel.from_any(severity_level), properties=properties)

    def with_properties(self, **extra: Any) -> "ExceptionRecord":
        merged: Dict[str, Any] = dict(self.properties or {})
        merged.update(extra)
        return replace(self, properties=merged)

    def is_buffered(self) -> bool:
        return bool(self.properties) and self.properties.get(PROVENANCE_KEY) == PROVENANCE_VALUE

    def to_dict(self) -> Dict[str, Any]:
        err = self.error
        # Errors reported by remote clients carry their own type name and stack.
        type_name = str(getattr(err, "type_name", "") or "") or type(err).__name__
        stack = str(getattr(err, "stack", "") or "")
        if not stack and err.__traceback__ is not None:
            stack = "".join(traceback.format_exception(type(err), err, err.__traceback__))
        d: Dict[str, Any] = {
            "exception": {
                "type": type_name,
                "message": str(err),
                "stack": stack,
            },
            "severityLevel": int(self.severity_level),
            "properties": dict(self.properties or {}),
        }
        if not stack:
            d["exception"].pop("stack")
        return d
