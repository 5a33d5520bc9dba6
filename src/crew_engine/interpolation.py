from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

PLACEHOLDER_PATTERN = re.compile(r"\{(\w+)\}")


def interpolate_variables(text: str, inputs: Mapping[str, Any]) -> str:
    """Replace ``{key}`` placeholders with ``str(inputs[key])``.

    Unknown keys and malformed braces are left as-is. Substitution is a single
    pass, so values that themselves contain ``{...}`` are never re-expanded.
    """

    def _substitute(match: re.Match[str]) -> str:
        key = match.group(1)
        if key not in inputs:
            return match.group(0)
        return str(inputs[key])

    return PLACEHOLDER_PATTERN.sub(_substitute, text)
