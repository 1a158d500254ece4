"""OGG変換モジュール

FFmpegを使用してWAVファイルをOGG Vorbis形式に変換する機能を提供する。
"""

import subprocess
from pathlib import Path

import ffmpeg  # type: ignore[import-untyped]

from akaudio.converter.base import BaseConverter, ConversionResult, ConversionStatus
from akaudio.converter.process import ProcessRegistry, communicate
from akaudio.errors import TranscodeError


class WavToOggConverter(BaseConverter):
    """.wav を .ogg に変換するConverter

    libvorbis の可変ビットレート（qscale:a）でエンコードする。
    """

    def __init__(
        self,
        executable: str = "ffmpeg",
        audio_codec: str = "libvorbis",
        audio_quality: int = 10,
        timeout: int = 300,
        registry: ProcessRegistry | None = None,
    ) -> None:
        """WavToOggConverterを初期化する

        Args:
            executable: ffmpeg の実行ファイル名またはパス
            audio_codec: 使用する音声コーデック（デフォルト: libvorbis）
            audio_quality: 音声品質（0-10、VBR用）
            timeout: FFmpeg実行のタイムアウト秒数（デフォルト: 300秒）
            registry: 実行中プロセスのレジストリ（キャンセル時に終了させる）
        """
        self._executable = executable
        self._audio_codec = audio_codec
        self._audio_quality = audio_quality
        self._timeout = timeout
        self._registry = registry or ProcessRegistry()

    @property
    def supported_extensions(self) -> tuple[str, ...]:
        return (".wav",)

    @property
    def output_extension(self) -> str:
        return ".ogg"

    def build_stream(self, source: Path, dest: Path):  # type: ignore[no-untyped-def]
        """ffmpeg-python のストリームを組み立てる"""
        return (
            ffmpeg.input(str(source))
            .output(str(dest), acodec=self._audio_codec, **{"qscale:a": self._audio_quality})
            .overwrite_output()
        )

    def convert(self, source: Path, dest: Path) -> ConversionResult:
        """.wav ファイルを .ogg に変換する

        Args:
            source: 変換元 .wav ファイルのパス
            dest: 変換先 .ogg ファイルのパス

        Returns:
            変換結果を表すConversionResultオブジェクト
        """
        if not source.exists():
            return ConversionResult.failed(source, f"変換元ファイルが見つかりません: {source}")

        bytes_before = self._get_file_size(source)
        dest.parent.mkdir(parents=True, exist_ok=True)

        try:
            process = self.build_stream(source, dest).run_async(
                cmd=self._executable,
                pipe_stdout=True,
                pipe_stderr=True,
            )
        except FileNotFoundError:
            return ConversionResult.failed(
                source, "FFmpegが見つかりません。インストールしてください。"
            )

        self._registry.register(process)
        try:
            _, stderr = communicate(process, self._timeout)
        except subprocess.TimeoutExpired:
            return ConversionResult.failed(
                source, f"FFmpeg処理がタイムアウトしました（{self._timeout}秒）"
            )
        finally:
            self._registry.unregister(process)

        if process.returncode != 0:
            detail = stderr.strip().splitlines()[-1] if stderr.strip() else ""
            error = TranscodeError(self._executable, process.returncode, detail)
            return ConversionResult.failed(source, str(error))

        return ConversionResult(
            source_path=source,
            dest_path=dest,
            status=ConversionStatus.SUCCESS,
            bytes_before=bytes_before,
            bytes_after=self._get_file_size(dest),
        )

    def is_available(self) -> bool:
        """FFmpegが利用可能かを確認する"""
        try:
            subprocess.run(
                [self._executable, "-version"],
                capture_output=True,
                check=True,
            )
            return True
        except (FileNotFoundError, subprocess.SubprocessError):
            return False
