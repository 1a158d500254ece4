"""akaudio - Wwise audio container extractor CLI tool."""

__version__ = "0.1.0"

from akaudio.logger import (  # noqa: E402
    ExtractLogger,
    LogConfig,
    ProgressDisplay,
    VerboseLevel,
)
from akaudio.pipeline import (  # noqa: E402
    ExtractionPipeline,
    PipelineConfig,
    PipelinePhase,
    PipelineProgress,
    PipelineResult,
    ProgressCallback,
)

__all__ = [
    "ExtractLogger",
    "ExtractionPipeline",
    "LogConfig",
    "PipelineConfig",
    "PipelinePhase",
    "PipelineProgress",
    "PipelineResult",
    "ProgressCallback",
    "ProgressDisplay",
    "VerboseLevel",
]
