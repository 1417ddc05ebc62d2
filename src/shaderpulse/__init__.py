"""Audio-reactive parameter engine for shader visuals."""

from shaderpulse.config import EngineConfig, load_config
from shaderpulse.core.beats import BeatPolicy
from shaderpulse.core.composer import UniformRecord
from shaderpulse.core.smoother import ParameterSmoother
from shaderpulse.engine import NormalizationMode, ReactiveEngine
from shaderpulse.io.loader import load_analysis
from shaderpulse.session import AudioSession

__version__ = "0.1.0"
__all__ = [
    "AudioSession",
    "BeatPolicy",
    "EngineConfig",
    "NormalizationMode",
    "ParameterSmoother",
    "ReactiveEngine",
    "UniformRecord",
    "load_analysis",
    "load_config",
]
