"""Parsers for list-valued server settings (CORS origins, room ids)."""

import json
import re
from typing import Any, ClassVar

from pydantic.fields import FieldInfo
from pydantic_settings import EnvSettingsSource

ROOM_ID_PATTERN = re.compile(r"^[a-zA-Z0-9_-]{1,50}$")


def parse_string_list(value: str | list[str], *, name: str = "value") -> list[str]:
    """Accept a list, a JSON array string or a CSV string; never an empty result.

    CSV segments are stripped and blank segments skipped, so "a, b," is ["a", "b"].
    """
    if isinstance(value, str):
        text = value.strip()
        if text.startswith("["):
            try:
                value = json.loads(text)
            except json.JSONDecodeError as e:
                raise ValueError(f"{name}: invalid JSON array ({e})") from e
            if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
                raise ValueError(f"{name}: JSON must be an array of strings")
        else:
            value = [item.strip() for item in text.split(",") if item.strip()]

    if not value:
        raise ValueError(f"{name} must not be empty")
    return value


def is_valid_room_id(room_id: str) -> bool:
    return ROOM_ID_PATTERN.match(room_id) is not None


def parse_room_ids(value: str | list[str]) -> list[str]:
    """Parse the configured rooms; each id must be usable as a websocket path segment."""
    rooms = parse_string_list(value, name="rooms")
    bad = [room_id for room_id in rooms if not is_valid_room_id(room_id)]
    if bad:
        raise ValueError(f"Invalid room id: {bad[0]!r}")
    if len(set(rooms)) != len(rooms):
        raise ValueError("Room ids must be unique")
    return rooms


class StringListEnvSettingsSource(EnvSettingsSource):
    """Hand list-valued env vars to the field validators as raw strings.

    pydantic-settings would otherwise JSON-decode them first and reject
    the CSV form.
    """

    raw_string_fields: ClassVar[frozenset[str]] = frozenset({"cors_origins", "rooms"})

    def prepare_field_value(
        self,
        field_name: str,
        field: FieldInfo,
        value: Any,  # noqa: ANN401
        value_is_complex: bool,  # noqa: FBT001
    ) -> Any:  # noqa: ANN401
        if field_name in self.raw_string_fields and isinstance(value, str):
            return value
        return super().prepare_field_value(field_name, field, value, value_is_complex)
