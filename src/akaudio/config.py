"""Configuration module for akaudio."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

# 出力可能なフォーマット
SUPPORTED_FORMATS = ("wem", "wav", "ogg")


class ConfigError(Exception):
    """設定ファイル読み込みエラー"""

    pass


@dataclass(frozen=True)
class OutputConfig:
    """出力設定"""

    formats: tuple[str, ...] = ("wem",)
    split_output: bool = False
    banked_output: bool = False
    no_lang: bool = False
    legacy_names: bool = False


@dataclass(frozen=True)
class KnownNamesConfig:
    """既知のファイル名テーブル設定"""

    filenames: Path | None = None
    events: Path | None = None


@dataclass(frozen=True)
class ToolsConfig:
    """外部ツール設定"""

    vgmstream: str = "vgmstream-cli"
    ffmpeg: str = "ffmpeg"


@dataclass(frozen=True)
class TimeoutConfig:
    """タイムアウト設定"""

    vgmstream: int = 120
    ffmpeg: int = 300


@dataclass(frozen=True)
class RetrySettings:
    """リトライ設定"""

    max_attempts: int = 2
    backoff_base: float = 1.0
    backoff_multiplier: float = 2.0


@dataclass(frozen=True)
class AkaudioConfig:
    """ルート設定"""

    output: OutputConfig = field(default_factory=OutputConfig)
    known_names: KnownNamesConfig = field(default_factory=KnownNamesConfig)
    tools: ToolsConfig = field(default_factory=ToolsConfig)
    timeouts: TimeoutConfig = field(default_factory=TimeoutConfig)
    retry: RetrySettings = field(default_factory=RetrySettings)
    workers: int | None = None
    index_file: Path | None = None


def load_config(path: Path) -> AkaudioConfig:
    """設定ファイルを読み込む

    相対パスで指定されたTSVやインデックスファイルは設定ファイルのディレクトリ基準で解決する。

    Args:
        path: 設定ファイルパス

    Returns:
        AkaudioConfig: 読み込んだ設定（デフォルトとマージ済み）

    Raises:
        ConfigError: ファイル読み込みまたはパースエラー
    """
    if not path.exists():
        raise ConfigError(f"設定ファイルが見つかりません: {path}")

    try:
        with path.open(encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"YAML解析エラー: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError("設定ファイルはYAMLのマッピング形式である必要があります")

    default = get_default_config()
    base_dir = path.parent

    return AkaudioConfig(
        output=_merge_output_config(data.get("output", {}), default.output),
        known_names=_merge_known_names_config(
            data.get("known_names", {}), default.known_names, base_dir
        ),
        tools=_merge_tools_config(data.get("tools", {}), default.tools),
        timeouts=_merge_timeout_config(data.get("timeouts", {}), default.timeouts),
        retry=_merge_retry_settings(data.get("retry", {}), default.retry),
        workers=_parse_workers(data.get("workers", default.workers)),
        index_file=_resolve_path(data.get("index_file"), base_dir) or default.index_file,
    )


def get_default_config() -> AkaudioConfig:
    """デフォルト設定を取得する"""
    return AkaudioConfig()


def _resolve_path(value: Any, base_dir: Path) -> Path | None:
    """設定値をパスに変換する"""
    if not value:
        return None
    path = Path(str(value)).expanduser()
    return path if path.is_absolute() else base_dir / path


def _parse_formats(value: Any, default: tuple[str, ...]) -> tuple[str, ...]:
    """出力フォーマットをパースする"""
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        return default
    formats = [str(item).lower() for item in value]
    unknown = [item for item in formats if item not in SUPPORTED_FORMATS]
    if unknown:
        raise ConfigError(f"未対応の出力フォーマットです: {', '.join(unknown)}")
    if "wem" not in formats:
        formats.insert(0, "wem")
    return tuple(dict.fromkeys(formats))


def _parse_workers(value: Any) -> int | None:
    """ワーカー数をパースする"""
    if value is None:
        return None
    if not isinstance(value, int) or isinstance(value, bool) or value < 1:
        raise ConfigError(f"workers は1以上の整数である必要があります: {value!r}")
    return value


def _merge_output_config(data: dict[str, Any], default: OutputConfig) -> OutputConfig:
    """出力設定をマージする"""
    if not isinstance(data, dict):
        return default
    return OutputConfig(
        formats=_parse_formats(data.get("formats", list(default.formats)), default.formats),
        split_output=data.get("split_output", default.split_output),
        banked_output=data.get("banked_output", default.banked_output),
        no_lang=data.get("no_lang", default.no_lang),
        legacy_names=data.get("legacy_names", default.legacy_names),
    )


def _merge_known_names_config(
    data: dict[str, Any], default: KnownNamesConfig, base_dir: Path
) -> KnownNamesConfig:
    """既知のファイル名テーブル設定をマージする"""
    if not isinstance(data, dict):
        return default
    return KnownNamesConfig(
        filenames=_resolve_path(data.get("filenames"), base_dir) or default.filenames,
        events=_resolve_path(data.get("events"), base_dir) or default.events,
    )


def _merge_tools_config(data: dict[str, Any], default: ToolsConfig) -> ToolsConfig:
    """外部ツール設定をマージする"""
    if not isinstance(data, dict):
        return default
    return ToolsConfig(
        vgmstream=data.get("vgmstream", default.vgmstream),
        ffmpeg=data.get("ffmpeg", default.ffmpeg),
    )


def _merge_timeout_config(data: dict[str, Any], default: TimeoutConfig) -> TimeoutConfig:
    """タイムアウト設定をマージする"""
    if not isinstance(data, dict):
        return default
    return TimeoutConfig(
        vgmstream=data.get("vgmstream", default.vgmstream),
        ffmpeg=data.get("ffmpeg", default.ffmpeg),
    )


def _merge_retry_settings(data: dict[str, Any], default: RetrySettings) -> RetrySettings:
    """リトライ設定をマージする"""
    if not isinstance(data, dict):
        return default
    return RetrySettings(
        max_attempts=data.get("max_attempts", default.max_attempts),
        backoff_base=data.get("backoff_base", default.backoff_base),
        backoff_multiplier=data.get("backoff_multiplier", default.backoff_multiplier),
    )
