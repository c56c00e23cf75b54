"""Reporting utilities for eventconv."""

from .metrics import CsvSink, JsonlSink
from .plots import PlotAdapter

__all__ = ["CsvSink", "JsonlSink", "PlotAdapter"]
