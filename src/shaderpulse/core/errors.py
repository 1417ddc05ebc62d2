"""Exceptions raised by the parameter engine."""


class ShaderPulseError(Exception):
    """Base class for engine errors."""


class UnknownParameterError(ShaderPulseError, KeyError):
    """A parameter name is not registered in the smoother."""


class NormalizerNotReadyError(ShaderPulseError, RuntimeError):
    """The adaptive normalizer was queried before a table was installed."""


class AnalysisFormatError(ShaderPulseError, ValueError):
    """An analysis file could not be interpreted."""
