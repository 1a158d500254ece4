"""Converter module for akaudio.

外部ツールによる音声変換機能を提供するモジュール。
vgmstream-cli による WEM -> WAV 変換と FFmpeg による WAV -> OGG 変換を
統一されたインターフェースで扱う。
"""

from akaudio.converter.base import BaseConverter, ConversionResult, ConversionStatus
from akaudio.converter.manager import (
    RetryConfig,
    TranscodeManager,
    TranscodeOutcome,
    TranscodeRequest,
)
from akaudio.converter.ogg import WavToOggConverter
from akaudio.converter.process import ProcessRegistry
from akaudio.converter.wem import WemToWavConverter

__all__ = [
    "BaseConverter",
    "ConversionResult",
    "ConversionStatus",
    "ProcessRegistry",
    "RetryConfig",
    "TranscodeManager",
    "TranscodeOutcome",
    "TranscodeRequest",
    "WavToOggConverter",
    "WemToWavConverter",
]
