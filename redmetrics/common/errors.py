from __future__ import annotations


class ConfigurationError(ValueError):
    """Raised when metrics options are invalid at configuration time."""


class LabelMismatchError(ValueError):
    """Raised when an observation uses label names other than the canonical set."""

    def __init__(self, expected: tuple[str, ...], received: tuple[str, ...]) -> None:
        self.expected = expected
        self.received = received
        missing = sorted(set(expected) - set(received))
        unexpected = sorted(set(received) - set(expected))
        super().__init__(
            f"label names do not match: missing={missing} unexpected={unexpected}"
        )
