"""
Cell formatting for result tables.

ValueFormatter turns one raw cell into display text. Rules, first match wins:

    1. None                                  -> ""
    2. "{..." string in a string/Json column -> pretty-printed JSON (kind "json")
    3. Other strings                         -> unchanged
    4. Numbers and booleans                  -> str(value)
    5. Navigation {"Id", "RelECClassId"}     -> "<ClassName> <Id>", "" if incomplete
    6. Lists                                 -> "[a, b, ...]", items formatted recursively
    7. Anything else                         -> json.dumps(value)

Formatting never raises for bad cell content; malformed JSON is shown as is.
"""

import json
from typing import Any

from melodi.console.resolver import ReferenceResolver
from melodi.schema import ColumnMeta, FormattedValue

JSON_KIND = "json"
NAVIGATION_TYPE = "navigation"


def pretty_json(text: str) -> str | None:
    """Re-indent a JSON object string, or None if it is not one."""
    try:
        parsed = json.loads(text)
    except (ValueError, RecursionError):
        return None
    if not isinstance(parsed, dict):
        return None
    return json.dumps(parsed, indent=2, ensure_ascii=False)


def _is_json_candidate(column: ColumnMeta) -> bool:
    extended = (column.extended_type or "").lower()
    return extended == "json" or column.type_name.lower() == "string"


class ValueFormatter:
    """
    Formats raw values for one console session.

    Navigation cells are resolved through the session's ReferenceResolver,
    which may add entries to its cache; the raw values are never modified.
    """

    def __init__(self, resolver: ReferenceResolver) -> None:
        self.resolver = resolver

    def format(self, value: Any, column: ColumnMeta) -> FormattedValue:
        """Format a single cell."""
        if value is None:
            return FormattedValue(text="")

        if isinstance(value, str):
            if value.startswith("{") and _is_json_candidate(column):
                pretty = pretty_json(value)
                if pretty is not None:
                    return FormattedValue(text=pretty, detected_kind=JSON_KIND)
            return FormattedValue(text=value)

        if isinstance(value, (bool, int, float)):
            return FormattedValue(text=str(value))

        if column.type_name == NAVIGATION_TYPE:
            return FormattedValue(text=self._format_navigation(value))

        if isinstance(value, (list, tuple)):
            items = ", ".join(self.format(item, column).text for item in value)
            return FormattedValue(text=f"[{items}]")

        return FormattedValue(text=json.dumps(value, default=str, ensure_ascii=False))

    def _format_navigation(self, value: Any) -> str:
        if not isinstance(value, dict):
            return ""
        instance_id = value.get("Id")
        class_id = value.get("RelECClassId")
        if not instance_id or not class_id:
            return ""
        return f"{self.resolver.resolve(str(class_id))} {instance_id}"


def format_value(value: Any, column: ColumnMeta, resolver: ReferenceResolver) -> FormattedValue:
    """Format one cell without keeping a ValueFormatter around."""
    return ValueFormatter(resolver).format(value, column)
