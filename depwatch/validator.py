"""Accumulating validation of configuration values and resource references."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from depwatch.types import CrossVersionObjectReference


class ValidationError(ValueError):
    """One or more validation failures."""

    def __init__(self, errors: list[str]) -> None:
        self.errors = list(errors)
        noun = "error" if len(self.errors) == 1 else "errors"
        lines = "".join(f"\t* {message}\n" for message in self.errors)
        super().__init__(f"{len(self.errors)} {noun} occurred:\n{lines}")


def parse_group_version(value: str) -> tuple[str, str]:
    """Split an apiVersion such as ``"apps/v1"`` into (group, version)."""
    if value in ("", "/"):
        return "", ""
    parts = value.split("/")
    if len(parts) == 1:
        return "", value
    if len(parts) == 2:
        return parts[0], parts[1]
    raise ValueError(f"unexpected GroupVersion string: {value}")


class Scheme:
    """Registry of known kinds keyed by group and version."""

    def __init__(self) -> None:
        self._known: set[tuple[str, str, str]] = set()

    def add_known_kinds(self, group: str, version: str, *kinds: str) -> None:
        """Register kinds under the given group and version."""
        self._known.update((group, version, kind) for kind in kinds)

    def recognizes(self, group: str, version: str, kind: str) -> bool:
        """Return True if the kind is registered for this group and version."""
        return (group, version, kind) in self._known


@dataclass
class Validator:
    """Collects validation failures instead of stopping at the first one."""

    errors: list[str] = field(default_factory=list)

    def must_not_be_empty(self, key: str, value: Any) -> bool:
        """Check that a string, sequence or mapping is present and not empty."""
        if value is None:
            self.errors.append(f"{key} must not be nil or empty")
            return False
        if isinstance(value, str):
            empty = value.strip() == ""
        elif isinstance(value, (Sequence, Mapping)) and not isinstance(value, (bytes, bytearray)):
            empty = len(value) == 0
        else:
            self.errors.append(
                f"unsupported type of value for key {key}. do not know how to check if it is empty"
            )
            return False
        if empty:
            self.errors.append(f"value for key {key} must not be empty")
            return False
        return True

    def must_not_be_nil(self, key: str, value: Any) -> bool:
        """Check that a value is not None."""
        if value is None:
            self.errors.append(f"{key} must not be nil")
            return False
        return True

    def resource_ref_must_be_valid(
        self, ref: CrossVersionObjectReference | None, scheme: Scheme
    ) -> bool:
        """Check that the reference's apiVersion parses and its kind is known to the scheme."""
        if ref is None:
            self.errors.append("ref must not be nil")
            return False
        try:
            group, version = parse_group_version(ref.api_version)
        except ValueError as exc:
            self.errors.append(str(exc))
            return False
        return scheme.recognizes(group, version, ref.kind)

    def raise_if_errors(self) -> None:
        """Raise ValidationError holding every collected failure, if there are any."""
        if self.errors:
            raise ValidationError(self.errors)