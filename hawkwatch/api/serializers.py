"""
Wire format for monitoring documents.

Python records serialize with snake_case keys through their ``to_dict``
methods. Documents leaving the process (HTTP responses, ``status --json``)
use camelCase keys at every nesting level.
"""

from typing import Any

from pydantic.alias_generators import to_camel


def wire_format(document: Any) -> Any:
    """Recursively rename snake_case dictionary keys to camelCase."""
    if isinstance(document, dict):
        return {
            (to_camel(key) if isinstance(key, str) else key): wire_format(value)
            for key, value in document.items()
        }
    if isinstance(document, (list, tuple)):
        return [wire_format(item) for item in document]
    return document
