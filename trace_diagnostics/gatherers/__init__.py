"""Gatherers that turn a finished page-load pass into artifacts."""

from trace_diagnostics.gatherers.speedline import SpeedlineGatherer

__all__ = ["SpeedlineGatherer"]
