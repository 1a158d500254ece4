"""TranscodeManager モジュール

WEM -> WAV -> OGG の変換チェーンをリトライ付きで実行するTranscodeManagerを提供する。
"""

import os
import threading
from dataclasses import dataclass, field
from pathlib import Path

import psutil

from akaudio.converter.base import BaseConverter, ConversionResult
from akaudio.converter.ogg import WavToOggConverter
from akaudio.converter.process import ProcessRegistry
from akaudio.converter.wem import WemToWavConverter


@dataclass
class RetryConfig:
    """リトライ設定

    変換失敗時のリトライ動作を制御するための設定。
    指数バックオフを使用してリトライ間隔を計算する。

    Attributes:
        max_attempts: 最大試行回数（初回含む）
        backoff_base: バックオフの基本秒数
        backoff_multiplier: バックオフの乗数
    """

    max_attempts: int = 2
    backoff_base: float = 1.0
    backoff_multiplier: float = 2.0

    def backoff(self, attempt: int) -> float:
        """attempt 回目の失敗後の待機秒数"""
        return self.backoff_base * (self.backoff_multiplier ** (attempt - 1))


@dataclass(frozen=True)
class TranscodeRequest:
    """1アセット分の変換要求

    Attributes:
        wem_path: 変換元 .wem ファイル
        wav_path: .wav の出力先
        ogg_path: .ogg の出力先（OGG出力が不要な場合はNone）
        keep_wav: OGG変換後も .wav を残すか
    """

    wem_path: Path
    wav_path: Path
    ogg_path: Path | None = None
    keep_wav: bool = True


@dataclass
class TranscodeOutcome:
    """1アセット分の変換結果"""

    request: TranscodeRequest
    results: list[ConversionResult] = field(default_factory=list)

    @property
    def is_success(self) -> bool:
        """すべての段階が成功したかどうか"""
        return bool(self.results) and all(result.is_success for result in self.results)

    @property
    def message(self) -> str:
        """最初に失敗した段階のメッセージ"""
        for result in self.results:
            if not result.is_success:
                return result.message
        return ""


# 1ワーカーあたりのメモリ使用量（MB）
MEMORY_PER_WORKER_MB = 500


class TranscodeManager:
    """変換マネージャー

    WemToWavConverter と WavToOggConverter を連結し、各段階をリトライ付きで実行する。
    キャンセルイベントが設定されるとバックオフ待機を打ち切り、実行中の変換ツールを終了させる。

    Attributes:
        wav_converter: WEM -> WAV のConverter
        ogg_converter: WAV -> OGG のConverter
        retry_config: リトライ設定
        registry: 実行中プロセスのレジストリ
    """

    def __init__(
        self,
        wav_converter: BaseConverter | None = None,
        ogg_converter: BaseConverter | None = None,
        retry_config: RetryConfig | None = None,
        registry: ProcessRegistry | None = None,
        cancel_event: threading.Event | None = None,
    ) -> None:
        """TranscodeManagerを初期化する

        Args:
            wav_converter: WEM -> WAV のConverter（Noneの場合は既定のvgmstream-cli）
            ogg_converter: WAV -> OGG のConverter（Noneの場合は既定のFFmpeg）
            retry_config: リトライ設定（Noneの場合はデフォルト設定を使用）
            registry: 実行中プロセスのレジストリ
            cancel_event: キャンセルイベント
        """
        self.registry = registry or ProcessRegistry()
        self.wav_converter = wav_converter or WemToWavConverter(registry=self.registry)
        self.ogg_converter = ogg_converter or WavToOggConverter(registry=self.registry)
        self.retry_config = retry_config or RetryConfig()
        self._cancel_event = cancel_event or threading.Event()

    @property
    def cancel_event(self) -> threading.Event:
        """キャンセルイベント"""
        return self._cancel_event

    def cancel(self) -> None:
        """キャンセルし、実行中の変換ツールを終了させる"""
        self._cancel_event.set()
        self.registry.terminate_all()

    def transcode(self, request: TranscodeRequest) -> TranscodeOutcome:
        """1アセットを変換する

        Args:
            request: 変換要求

        Returns:
            各段階の変換結果
        """
        outcome = TranscodeOutcome(request=request)

        wav_result = self.run_with_retry(self.wav_converter, request.wem_path, request.wav_path)
        outcome.results.append(wav_result)
        if not wav_result.is_success or request.ogg_path is None:
            return outcome

        ogg_result = self.run_with_retry(self.ogg_converter, request.wav_path, request.ogg_path)
        outcome.results.append(ogg_result)

        if ogg_result.is_success and not request.keep_wav:
            request.wav_path.unlink(missing_ok=True)

        return outcome

    def run_with_retry(self, converter: BaseConverter, source: Path, dest: Path) -> ConversionResult:
        """リトライ付きで単一ファイルを変換する

        Args:
            converter: 使用するConverter
            source: 変換元ファイルのパス
            dest: 変換先ファイルのパス

        Returns:
            最後の試行の変換結果
        """
        last_result: ConversionResult | None = None

        for attempt in range(1, self.retry_config.max_attempts + 1):
            if self._cancel_event.is_set():
                return ConversionResult.failed(source, "キャンセルされました")

            try:
                result = converter.convert(source, dest)
            except Exception as e:
                result = ConversionResult.failed(source, str(e))

            if result.is_success:
                return result
            last_result = result

            if attempt < self.retry_config.max_attempts:
                # 指数バックオフ: キャンセル時は待機を打ち切る
                if self._cancel_event.wait(self.retry_config.backoff(attempt)):
                    return ConversionResult.failed(source, "キャンセルされました")

        if last_result is None:
            return ConversionResult.failed(source, "変換に失敗しました")

        return ConversionResult.failed(
            source, f"最大リトライ回数超過: {last_result.message}"
        )

    @staticmethod
    def calculate_workers(available_memory_mb: int | None = None) -> int:
        """最適なワーカー数を計算する

        メモリ使用量とCPUコア数に基づいて、最適なワーカー数を計算する。
        1ワーカーあたり500MBのメモリを想定する。

        Args:
            available_memory_mb: 使用可能なメモリ（MB）。Noneの場合は自動検出

        Returns:
            最適なワーカー数（最小1）
        """
        cpu_count = os.cpu_count() or 1

        if available_memory_mb is None:
            available_memory_mb = psutil.virtual_memory().available // (1024 * 1024)

        memory_based_workers = available_memory_mb // MEMORY_PER_WORKER_MB
        return max(1, min(memory_based_workers, cpu_count))
