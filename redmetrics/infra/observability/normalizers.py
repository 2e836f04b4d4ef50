from __future__ import annotations

import re
from collections.abc import Iterable
from typing import Any, Final
from urllib.parse import urlparse

from redmetrics.common.errors import ConfigurationError

PLACEHOLDER: Final = "#val"
SEPARATOR: Final = "/"

# 内置掩码：整段匹配才替换，避免跨段改写
_BUILTIN_MASKS: Final[tuple[re.Pattern[str], ...]] = (
    re.compile(r"^-?\d+$"),
    re.compile(
        r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
        re.IGNORECASE,
    ),
    re.compile(r"^(\d{2}|\d{4})-\d\d-\d\d$"),
    re.compile(r"^(?=[a-f]*\d)[0-9a-f]{7,}$", re.IGNORECASE),
)

Mask = tuple[re.Pattern[str], str]


def compile_masks(extra_masks: Iterable[Any]) -> tuple[Mask, ...]:
    """Compile user masks into ``(pattern, replacement)`` pairs.

    Each entry is either a pattern (string or compiled) that replaces matches
    with the placeholder, or a ``(pattern, replacement)`` pair. Order is kept.
    """
    compiled: list[Mask] = []
    for index, entry in enumerate(extra_masks):
        if isinstance(entry, (str, re.Pattern)):
            pattern, replacement = entry, PLACEHOLDER
        elif isinstance(entry, (tuple, list)) and len(entry) == 2:
            pattern, replacement = entry
        else:
            raise ConfigurationError(
                f"extra_masks[{index}] must be a pattern or a (pattern, replacement) pair"
            )
        if not isinstance(replacement, str):
            raise ConfigurationError(f"extra_masks[{index}] replacement must be a string")
        if SEPARATOR in replacement:
            raise ConfigurationError(
                f"extra_masks[{index}] replacement must not contain {SEPARATOR!r}"
            )
        if isinstance(pattern, str):
            try:
                pattern = re.compile(pattern)
            except re.error as exc:
                raise ConfigurationError(
                    f"extra_masks[{index}] is not a valid pattern: {exc}"
                ) from exc
        elif not isinstance(pattern, re.Pattern):
            raise ConfigurationError(f"extra_masks[{index}] pattern must be a string")
        compiled.append((pattern, replacement))
    return tuple(compiled)


def _mask_segment(segment: str, masks: tuple[Mask, ...]) -> str:
    for pattern in _BUILTIN_MASKS:
        if pattern.match(segment):
            segment = PLACEHOLDER
            break
    for pattern, replacement in masks:
        segment = pattern.sub(replacement, segment)
    return segment


class PathNormalizer:
    """Turns raw request paths into bounded-cardinality route labels."""

    def __init__(self, extra_masks: Iterable[Any] = ()) -> None:
        self.masks = compile_masks(extra_masks)

    def normalize(self, raw_path: str) -> str:
        path = raw_path.split("?", 1)[0]
        if not path:
            return path
        return SEPARATOR.join(
            _mask_segment(segment, self.masks) for segment in path.split(SEPARATOR)
        )


def normalize_path(raw_path: str, extra_masks: Iterable[Any] = ()) -> str:
    return PathNormalizer(extra_masks).normalize(raw_path)


def normalize_status_code(status_code: int) -> str:
    return f"{int(status_code) // 100}xx"


def is_valid_url(url: Any) -> bool:
    if not isinstance(url, str) or not url:
        return False
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in {"http", "https"} and bool(parsed.netloc)
