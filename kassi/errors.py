# kassi/errors.py
"""Field-level validation errors collected by `Listing.validate`.

Errors are never raised; they accumulate on the record and are returned to
the caller (the API renders them as a 422 body).
"""
from typing import Dict, List

MESSAGES = {
    "blank": "can't be blank",
    "empty": "cannot be empty",
    "inclusion": "is not included in the list",
    "must_be_nil": "must be empty",
    "too_short": "is too short (minimum is {count} characters)",
    "too_long": "is too long (maximum is {count} characters)",
}


def generate_message(key: str, **options) -> str:
    return MESSAGES[key].format(**options)


class Errors:
    """Ordered mapping of field name to a list of messages."""

    def __init__(self):
        self._messages: Dict[str, List[str]] = {}

    def add(self, field: str, message: str) -> None:
        self._messages.setdefault(field, []).append(message)

    def clear(self) -> None:
        self._messages.clear()

    def __getitem__(self, field: str) -> List[str]:
        return self._messages.get(field, [])

    def __contains__(self, field: str) -> bool:
        return field in self._messages

    def __bool__(self) -> bool:
        return bool(self._messages)

    def __len__(self) -> int:
        return sum(len(v) for v in self._messages.values())

    def full_messages(self) -> List[str]:
        return [f"{field} {msg}" for field, msgs in self._messages.items() for msg in msgs]

    def as_dict(self) -> Dict[str, List[str]]:
        return {field: list(msgs) for field, msgs in self._messages.items()}

    def __repr__(self):
        return f"Errors({self._messages!r})"
