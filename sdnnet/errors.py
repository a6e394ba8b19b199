"""Field validation errors and their aggregation."""

from __future__ import annotations

import json
from collections.abc import Iterable
from typing import Any

_INVALID = "Invalid value"
_REQUIRED = "Required value"


def _format_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return json.dumps(value)
    if isinstance(value, int):
        return str(value)
    if value is None:
        return "null"
    return repr(value)


class FieldError(Exception):
    """An error about one field of an object."""

    def __init__(self, kind: str, field: str, value: Any = None, detail: str = "") -> None:
        self.kind = kind
        self.field = field
        self.value = value
        self.detail = detail
        super().__init__(self._message())

    def _message(self) -> str:
        if self.kind == _INVALID:
            body = f"{self.kind}: {_format_value(self.value)}"
        else:
            body = self.kind
        if self.detail:
            body += f": {self.detail}"
        return f"{self.field}: {body}"

    @classmethod
    def invalid(cls, path: str, value: Any, detail: str) -> FieldError:
        """A field holds a value that is not acceptable."""
        return cls(_INVALID, path, value, detail)

    @classmethod
    def required(cls, path: str, detail: str) -> FieldError:
        """A field that must be set is missing."""
        return cls(_REQUIRED, path, None, detail)


class AggregateError(Exception):
    """Several errors reported together."""

    def __init__(self, errors: Iterable[BaseException]) -> None:
        self.errors = list(errors)
        super().__init__(self._message())

    def _message(self) -> str:
        messages: list[str] = []
        for err in self.errors:
            text = str(err)
            if text not in messages:
                messages.append(text)
        if len(messages) == 1:
            return messages[0]
        return "[" + ", ".join(messages) + "]"

    def __iter__(self):
        return iter(self.errors)

    def __len__(self) -> int:
        return len(self.errors)

    @classmethod
    def from_errors(cls, errors: Iterable[BaseException | None]) -> AggregateError | None:
        """Bundle the given errors, or return None if there are none."""
        present = [err for err in errors if err is not None]
        if not present:
            return None
        return cls(present)