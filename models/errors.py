"""Error taxonomy for reading generation and dispatch."""

from __future__ import annotations


class DispatchError(Exception):
    """Base class for every error that halts the dispatch loop."""


class GenerationError(DispatchError):
    """A sensor could not produce a reading."""


class SerializationError(DispatchError):
    """A reading could not be rendered into its JSON interchange form."""


class TransportError(DispatchError):
    """A message could not be delivered, or its delivery was not confirmed in time."""
