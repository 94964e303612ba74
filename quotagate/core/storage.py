"""
Key-value store for state that outlives a single request.

The respondent flow and survey publication hand small pieces of state to
later readers. Instead of an ambient global, a `KeyValueStore` is injected
wherever this state is read or written.

Documented keys:
- lastSurveyData:     JSON survey definition of the last published survey
- lastSurveyAudience: audience size requested for the last published survey
- lastSurveyTitle:    title of the last published survey
- submitted:<token>:  marker that a response was recorded for a share token

Values must be JSON-serializable.
"""

import copy
from typing import Any, Dict, Optional, Protocol


LAST_SURVEY_DATA_KEY = "lastSurveyData"
LAST_SURVEY_AUDIENCE_KEY = "lastSurveyAudience"
LAST_SURVEY_TITLE_KEY = "lastSurveyTitle"
SUBMITTED_KEY_PREFIX = "submitted:"


def submitted_key(token: str) -> str:
    return f"{SUBMITTED_KEY_PREFIX}{token}"


class KeyValueStore(Protocol):
    """Minimal string-keyed store."""

    def get(self, key: str) -> Optional[Any]:
        ...

    def set(self, key: str, value: Any) -> None:
        ...

    def delete(self, key: str) -> None:
        ...


class InMemoryKeyValueStore:
    """
    Process-local implementation of `KeyValueStore`.

    Values are deep-copied on the way in and out so callers never share
    mutable state through the store.
    """

    def __init__(self) -> None:
        self._data: Dict[str, Any] = {}

    def get(self, key: str) -> Optional[Any]:
        value = self._data.get(key)
        return copy.deepcopy(value)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def __contains__(self, key: str) -> bool:
        return key in self._data

    def __len__(self) -> int:
        return len(self._data)
