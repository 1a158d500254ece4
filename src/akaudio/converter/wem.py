"""WEM変換モジュール

vgmstream-cli を使用してWwiseの.wemファイルをWAVに変換する機能を提供する。
"""

import shutil
import subprocess
from pathlib import Path

from akaudio.converter.base import BaseConverter, ConversionResult, ConversionStatus
from akaudio.converter.process import ProcessRegistry, communicate
from akaudio.errors import TranscodeError


class WemToWavConverter(BaseConverter):
    """.wem を .wav に変換するConverter

    `vgmstream-cli -o <wav> <wem>` を実行する。
    """

    def __init__(
        self,
        executable: str = "vgmstream-cli",
        timeout: int = 120,
        registry: ProcessRegistry | None = None,
    ) -> None:
        """WemToWavConverterを初期化する

        Args:
            executable: vgmstream-cli の実行ファイル名またはパス
            timeout: 実行のタイムアウト秒数（デフォルト: 120秒）
            registry: 実行中プロセスのレジストリ（キャンセル時に終了させる）
        """
        self._executable = executable
        self._timeout = timeout
        self._registry = registry or ProcessRegistry()

    @property
    def supported_extensions(self) -> tuple[str, ...]:
        return (".wem",)

    @property
    def output_extension(self) -> str:
        return ".wav"

    def build_command(self, source: Path, dest: Path) -> list[str]:
        """実行するコマンドを組み立てる"""
        return [self._executable, "-o", str(dest), str(source)]

    def convert(self, source: Path, dest: Path) -> ConversionResult:
        """.wem ファイルを .wav に変換する

        Args:
            source: 変換元 .wem ファイルのパス
            dest: 変換先 .wav ファイルのパス

        Returns:
            変換結果を表すConversionResultオブジェクト
        """
        if not source.exists():
            return ConversionResult.failed(source, f"変換元ファイルが見つかりません: {source}")

        bytes_before = self._get_file_size(source)
        dest.parent.mkdir(parents=True, exist_ok=True)

        try:
            process = subprocess.Popen(
                self.build_command(source, dest),
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except FileNotFoundError:
            return ConversionResult.failed(
                source, f"{self._executable} が見つかりません。インストールしてください。"
            )

        self._registry.register(process)
        try:
            _, stderr = communicate(process, self._timeout)
        except subprocess.TimeoutExpired:
            return ConversionResult.failed(
                source, f"vgmstream処理がタイムアウトしました（{self._timeout}秒）"
            )
        finally:
            self._registry.unregister(process)

        if process.returncode != 0:
            error = TranscodeError(self._executable, process.returncode, stderr.strip())
            return ConversionResult.failed(source, str(error))

        return ConversionResult(
            source_path=source,
            dest_path=dest,
            status=ConversionStatus.SUCCESS,
            bytes_before=bytes_before,
            bytes_after=self._get_file_size(dest),
        )

    def is_available(self) -> bool:
        """vgmstream-cli が利用可能かを確認する"""
        return shutil.which(self._executable) is not None
