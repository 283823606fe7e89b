"""Secret masking helpers for logs."""

from __future__ import annotations

import shlex
from collections.abc import Sequence

_VISIBLE_PREFIX = 4


def mask_secret(value: str) -> str:
    """Keep the first four characters of a secret and star out the rest."""

    if not value:
        return ""
    if len(value) <= _VISIBLE_PREFIX:
        return "*" * len(value)
    return value[:_VISIBLE_PREFIX] + "*" * (len(value) - _VISIBLE_PREFIX)


def render_command_line(argv: Sequence[str], *, secrets: Sequence[str] = ()) -> str:
    """Render ``argv`` as a shell-quoted line with any known secret masked."""

    rendered = shlex.join(argv)
    for secret in secrets:
        if secret:
            rendered = rendered.replace(secret, mask_secret(secret))
    return rendered
