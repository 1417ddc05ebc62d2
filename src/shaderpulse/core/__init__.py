"""Core parameter engine components."""

from shaderpulse.core.beats import BeatEffect, BeatEventDispatcher, BeatPolicy
from shaderpulse.core.camera import CameraSpeedGovernor
from shaderpulse.core.composer import UniformComposer, UniformRecord
from shaderpulse.core.errors import (
    AnalysisFormatError,
    NormalizerNotReadyError,
    ShaderPulseError,
    UnknownParameterError,
)
from shaderpulse.core.normalizer import AdaptiveNormalizer, PercentileTable, build_table
from shaderpulse.core.smoother import ParameterSmoother, SmoothedParameter, Transition
from shaderpulse.core.threshold import ThresholdDetector
from shaderpulse.core.types import (
    BandIntensities,
    FeatureFrame,
    FeatureHistory,
    TimelineEvent,
    parse_timeline,
)

__all__ = [
    "AdaptiveNormalizer",
    "AnalysisFormatError",
    "BandIntensities",
    "BeatEffect",
    "BeatEventDispatcher",
    "BeatPolicy",
    "CameraSpeedGovernor",
    "FeatureFrame",
    "FeatureHistory",
    "NormalizerNotReadyError",
    "ParameterSmoother",
    "PercentileTable",
    "ShaderPulseError",
    "SmoothedParameter",
    "ThresholdDetector",
    "TimelineEvent",
    "Transition",
    "UniformComposer",
    "UniformRecord",
    "UnknownParameterError",
    "build_table",
    "parse_timeline",
]
