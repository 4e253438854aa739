"""Error taxonomy shared by the detection, phase and coupling layers."""
from __future__ import annotations

from typing import Optional


class InsufficientDataError(Exception):
    """Too few zero-crossings or candidates for a meaningful result.

    Detection stages catch this and report an empty result with the message
    as the diagnostic; it never aborts a multi-channel run.
    """


class InvalidConfigurationError(ValueError):
    """Contradictory or out-of-range configuration, raised before any scan."""


class InternalInvariantError(RuntimeError):
    """Segmentation disagreed with itself (e.g. missing interior crossing).

    Fatal for the channel/frequency unit of work that raised it.
    """

    def __init__(
        self,
        message: str,
        *,
        channel: Optional[str] = None,
        frequency: Optional[float] = None,
        event_index: Optional[int] = None,
    ) -> None:
        self.detail = message
        self.channel = channel
        self.frequency = frequency
        self.event_index = event_index
        context = []
        if channel is not None:
            context.append(f"channel={channel}")
        if frequency is not None:
            context.append(f"frequency={frequency:g}")
        if event_index is not None:
            context.append(f"event_index={event_index}")
        if context:
            message = f"{message} ({', '.join(context)})"
        super().__init__(message)

    def with_context(self, *, channel: Optional[str] = None, frequency: Optional[float] = None) -> "InternalInvariantError":
        return InternalInvariantError(
            self.detail,
            channel=channel if channel is not None else self.channel,
            frequency=frequency if frequency is not None else self.frequency,
            event_index=self.event_index,
        )


class NumericDegeneracyError(ArithmeticError):
    """A statistic is undefined, e.g. a null distribution with zero spread."""


__all__ = [
    "InsufficientDataError",
    "InvalidConfigurationError",
    "InternalInvariantError",
    "NumericDegeneracyError",
]
