"""Analysis loading and uniform manifest export."""

from shaderpulse.io.exporter import ManifestMetadata, UniformExporter
from shaderpulse.io.loader import TrackAnalysis, load_analysis, parse_analysis

__all__ = [
    "ManifestMetadata",
    "TrackAnalysis",
    "UniformExporter",
    "load_analysis",
    "parse_analysis",
]
