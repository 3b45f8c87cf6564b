from __future__ import annotations

"""JSON-like value types used at the status report boundary.

The status report is meant to be diffed between runs, so its value space is
declared as JSON-compatible instead of `object`/`Any`.
"""

from typing import TypeAlias


JSONScalar: TypeAlias = str | int | float | bool | None
JSONValue: TypeAlias = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]
JSONObject: TypeAlias = dict[str, JSONValue]
JSONArray: TypeAlias = list[JSONValue]
