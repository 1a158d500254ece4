"""進捗表示およびログ出力のインターフェース定義

このモジュールは、akaudioの抽出進捗表示とログ出力のためのインターフェースを定義する。
VerboseLevel (詳細ログレベル)に応じた出力制御を行う。
複数のワーカースレッドから同時に呼び出されるため、出力はロックで直列化する。
"""

from __future__ import annotations

import re
import sys
import threading
from dataclasses import dataclass
from datetime import datetime
from enum import IntEnum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol, TextIO

if TYPE_CHECKING:
    from akaudio.pipeline import PipelinePhase


class VerboseLevel(IntEnum):
    """詳細ログレベル

    QUIET: エラーのみ出力
    NORMAL: 進捗バーとサマリ出力
    VERBOSE: アセットごとの書き込み/スキップも出力（-vオプション）
    DEBUG: 外部コマンド実行ログも出力（-vvオプション）
    """

    QUIET = -1
    NORMAL = 0
    VERBOSE = 1
    DEBUG = 2


class ProgressDisplay(Protocol):
    """進捗表示のプロトコル"""

    def start(self, phase: PipelinePhase, total: int) -> None:
        """フェーズ開始を表示する

        Args:
            phase: 開始するパイプラインフェーズ
            total: 処理対象の総数
        """
        ...

    def update(self, current: int, message: str = "") -> None:
        """進捗を更新する

        Args:
            current: 現在の進捗（処理済みアイテム数）
            message: 追加の進捗メッセージ（オプション）
        """
        ...

    def finish(self, success: bool, message: str = "") -> None:
        """フェーズ終了を表示する

        Args:
            success: フェーズが成功したか
            message: 終了メッセージ（オプション）
        """
        ...


@dataclass
class LogConfig:
    """ログ設定

    Attributes:
        verbose_level: ログの詳細度レベル
        log_file: ログ出力先ファイルパス（Noneの場合はファイル出力なし）
        use_color: カラー出力を使用するか
        use_emoji: emoji表示を使用するか
    """

    verbose_level: VerboseLevel = VerboseLevel.NORMAL
    log_file: Path | None = None
    use_color: bool = True
    use_emoji: bool = True


class ExtractLogger:
    """抽出ログ出力クラス

    VerboseLevelに応じてメッセージのフィルタリングを行い、
    進捗表示インスタンスの作成も担当する。

    使用例:
        >>> config = LogConfig(verbose_level=VerboseLevel.VERBOSE)
        >>> logger = ExtractLogger(config)
        >>> logger.info("抽出を開始します")
        >>> logger.log_asset("english(us)/0001e240.wem", "written")
    """

    _ANSI_ESCAPE_PATTERN = re.compile(r"\x1b\[[0-9;]*m")

    def __init__(self, config: LogConfig) -> None:
        """ロガーを初期化する

        Args:
            config: ログ設定
        """
        self._config = config
        self._lock = threading.RLock()
        self._log_file: TextIO | None = None
        if config.log_file:
            # クラス自体がコンテキストマネージャとして動作し、__exit__でファイルを閉じる
            config.log_file.parent.mkdir(parents=True, exist_ok=True)
            self._log_file = open(config.log_file, "w", encoding="utf-8")  # noqa: SIM115

    def __enter__(self) -> ExtractLogger:
        """コンテキストマネージャのエントリポイント"""
        return self

    def __exit__(self, *args: object) -> None:
        """コンテキストマネージャの終了処理"""
        self.close()

    def close(self) -> None:
        """ログファイルを閉じる"""
        with self._lock:
            if self._log_file:
                self._log_file.close()
                self._log_file = None

    @property
    def config(self) -> LogConfig:
        """ログ設定を取得する"""
        return self._config

    def _print(self, message: str, file: TextIO | None = None) -> None:
        if file is None:
            file = sys.stdout
        with self._lock:
            print(message, file=file)

    def _log_to_file(self, level: str, message: str) -> None:
        """ファイルにログ出力する

        Args:
            level: ログレベル文字列
            message: 出力するメッセージ
        """
        with self._lock:
            if self._log_file:
                timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
                clean_message = self._strip_ansi(message)
                self._log_file.write(f"[{timestamp}] {level}: {clean_message}\n")
                self._log_file.flush()

    def _strip_ansi(self, text: str) -> str:
        """ANSIエスケープシーケンスを除去する"""
        return self._ANSI_ESCAPE_PATTERN.sub("", text)

    def info(self, message: str) -> None:
        """情報メッセージを出力する（NORMAL以上）"""
        if self._config.verbose_level >= VerboseLevel.NORMAL:
            self._print(message)
        self._log_to_file("INFO", message)

    def verbose(self, message: str) -> None:
        """詳細メッセージを出力する（VERBOSE以上）"""
        if self._config.verbose_level >= VerboseLevel.VERBOSE:
            self._print(message)
        self._log_to_file("VERBOSE", message)

    def debug(self, message: str) -> None:
        """デバッグメッセージを出力する（DEBUG以上）"""
        if self._config.verbose_level >= VerboseLevel.DEBUG:
            self._print(message)
        self._log_to_file("DEBUG", message)

    def error(self, message: str) -> None:
        """エラーメッセージを出力する（常に出力）"""
        self._print(f"エラー: {message}", file=sys.stderr)
        self._log_to_file("ERROR", message)

    def warning(self, message: str) -> None:
        """警告メッセージを出力する（QUIET以上）"""
        if self._config.verbose_level > VerboseLevel.QUIET:
            self._print(f"警告: {message}")
        self._log_to_file("WARNING", message)

    def create_progress(self) -> ProgressDisplay:
        """進捗表示インスタンスを作成する"""
        return ConsoleProgressDisplay(
            use_color=self._config.use_color,
            use_emoji=self._config.use_emoji,
        )

    def log_command(self, command: list[str], output: str) -> None:
        """外部コマンド実行をログする（DEBUG以上）

        Args:
            command: 実行したコマンドとその引数
            output: コマンドの出力
        """
        cmd_str = " ".join(command)
        self.debug(f"実行: {cmd_str}")
        if output:
            for line in output.splitlines():
                self.debug(f"  > {line}")

    def log_asset(self, relative_path: str, status: str, detail: str = "") -> None:
        """アセットの処理結果をログする（VERBOSE以上）

        Args:
            relative_path: フォーマットルートからの相対パス
            status: 処理ステータス（written, skipped, failed など）
            detail: 追加情報
        """
        suffix = f" ({detail})" if detail else ""
        self.verbose(f"{relative_path} [{status}]{suffix}")

    def log_summary(self, statistics: dict[str, Any]) -> None:
        """抽出サマリを出力する（NORMAL以上）

        Args:
            statistics: 抽出統計情報
        """
        failed = statistics.get("failed", 0)
        if failed:
            emoji = "⚠️" if self._config.use_emoji else "[WARN]"
            self.info(f"{emoji} Extraction finished with {failed} failure(s)")
        else:
            emoji = "✅" if self._config.use_emoji else "[OK]"
            self.info(f"{emoji} Extraction complete!")
        self.info(
            f"   Files: {statistics.get('files', 0)}"
            f"  Written: {statistics.get('written', 0)}"
            f"  Skipped: {statistics.get('skipped', 0)}"
            f"  Failed: {failed}"
        )
        if "output_path" in statistics:
            self.info(f"   Output: {statistics['output_path']}")


class ConsoleProgressDisplay:
    """コンソール進捗表示

    パイプラインの各フェーズの進捗をコンソールに表示するクラス。
    """

    PHASE_EMOJI: dict[str, str] = {
        "scan": "\U0001f50d",
        "extract": "\U0001f4e6",
        "index": "\U0001f4be",
    }

    PHASE_NAME: dict[str, str] = {
        "scan": "Scanning input files",
        "extract": "Extracting audio assets",
        "index": "Saving fingerprint index",
    }

    def __init__(self, use_color: bool = True, use_emoji: bool = True) -> None:
        """進捗表示を初期化する

        Args:
            use_color: カラー出力を使用するか
            use_emoji: 絵文字を使用するか
        """
        self._use_color = use_color
        self._use_emoji = use_emoji
        self._phase: PipelinePhase | None = None
        self._total = 0
        self._current = 0

    def start(self, phase: PipelinePhase, total: int) -> None:
        """フェーズ開始を表示する"""
        self._phase = phase
        self._total = total
        self._current = 0
        emoji = self.PHASE_EMOJI.get(phase.value, "") if self._use_emoji else ""
        name = self.PHASE_NAME.get(phase.value, str(phase))
        prefix = f"{emoji} " if emoji else ""
        print(f"{prefix}{name}...")

    def update(self, current: int, message: str = "") -> None:
        """進捗を更新する"""
        self._current = current
        if self._total > 0:
            percent = int((current / self._total) * 100)
            bar_width = 40
            filled = int(bar_width * current / self._total)
            bar = "█" * filled + "░" * (bar_width - filled)
            msg_part = f" {message}" if message else ""
            print(f"\r   [{bar}] {percent}%{msg_part}", end="", flush=True)

    def finish(self, success: bool, message: str = "") -> None:
        """フェーズ終了を表示する"""
        bar_width = 40
        full_bar = "█" * bar_width
        if success:
            mark = "✓" if self._use_emoji else "done"
            print(f"\r   [{full_bar}] 100% {mark}")
        else:
            mark = "✗" if self._use_emoji else "failed"
            msg_part = f": {message}" if message else ""
            print(f"\r   [{full_bar}] {mark}{msg_part}")
