"""抽出パイプラインの統合インターフェース定義

このモジュールは、akaudioの抽出パイプラインをオーケストレーションする。
入力ファイルごとにコンテナ種別を判定し、パッケージ/バンク/単体アセットの経路で
埋め込み音声アセットを取り出して出力ツリーへ書き出す。

書き出しはフィンガープリントインデックスで重複判定し、
内容が変わっていないアセットはスキップする。
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Protocol

from akaudio.cache import get_index_path
from akaudio.config import SUPPORTED_FORMATS, AkaudioConfig
from akaudio.converter.manager import RetryConfig, TranscodeManager, TranscodeRequest
from akaudio.converter.ogg import WavToOggConverter
from akaudio.converter.process import ProcessRegistry
from akaudio.converter.wem import WemToWavConverter
from akaudio.errors import (
    AkaudioError,
    CipherMismatchError,
    InvalidFormatError,
    IOFailureError,
    OutOfBoundsError,
)
from akaudio.index import FingerprintIndex, compute_fingerprint
from akaudio.logger import ExtractLogger
from akaudio.naming import AssetKind, AssetRef, KnownNames, OutputLayout, resolve_relative_path
from akaudio.parser.bank import Bank, decode_bank
from akaudio.parser.cipher import decrypt_asset, decrypt_package_header
from akaudio.parser.package import FileEntry, Package, decode_package, language_name
from akaudio.parser.signature import ContainerType, detect_container, sniff_extension

logger = logging.getLogger(__name__)

# ディレクトリ指定時に収集する拡張子
INPUT_SUFFIXES = (".pck", ".bnk", ".wem", ".chk")


class PipelinePhase(Enum):
    """パイプラインフェーズ

    1. SCAN: 入力ファイルの収集
    2. EXTRACT: アセットの抽出と書き出し
    3. INDEX: フィンガープリントインデックスの保存
    """

    SCAN = "scan"
    EXTRACT = "extract"
    INDEX = "index"


@dataclass(frozen=True)
class PipelineProgress:
    """パイプライン進捗情報

    Attributes:
        phase: 現在実行中のパイプラインフェーズ
        current: 現在の進捗（処理済みアイテム数）
        total: 総数（処理対象アイテム数）
        message: 追加の進捗メッセージ（オプション）
    """

    phase: PipelinePhase
    current: int
    total: int
    message: str = ""


class ProgressCallback(Protocol):
    """進捗コールバックのプロトコル"""

    def __call__(self, progress: PipelineProgress) -> None:
        """進捗情報を受け取るコールバック

        Args:
            progress: 現在の進捗情報
        """
        ...


@dataclass(frozen=True)
class PipelineConfig:
    """パイプライン設定

    CLIオプションや設定ファイルからの設定値をまとめて管理する。

    Attributes:
        inputs: 入力ファイルまたはディレクトリ
        output_dir: 出力ディレクトリ（wem/wav/ogg の各フォーマットルートを持つ）
        formats: 出力フォーマット（wem は常に含まれる）
        layout: 出力パスのレイアウト
        known_filenames: Known_Filenames.tsv のパス
        known_events: Known_Events.tsv のパス
        index_file: インデックスファイルのパス（Noneの場合はキャッシュディレクトリ）
        workers: ワーカー数（Noneの場合は自動計算）
        vgmstream_path: vgmstream-cli の実行ファイル
        ffmpeg_path: ffmpeg の実行ファイル
        vgmstream_timeout: vgmstream-cli のタイムアウト秒数
        ffmpeg_timeout: ffmpeg のタイムアウト秒数
        retry: 書き込みと変換のリトライ設定
    """

    inputs: tuple[Path, ...]
    output_dir: Path
    formats: tuple[str, ...] = ("wem",)
    layout: OutputLayout = field(default_factory=OutputLayout)
    known_filenames: Path | None = None
    known_events: Path | None = None
    index_file: Path | None = None
    workers: int | None = None
    vgmstream_path: str = "vgmstream-cli"
    ffmpeg_path: str = "ffmpeg"
    vgmstream_timeout: int = 120
    ffmpeg_timeout: int = 300
    retry: RetryConfig = field(default_factory=RetryConfig)

    @classmethod
    def from_config(
        cls, inputs: tuple[Path, ...], output_dir: Path, config: AkaudioConfig
    ) -> PipelineConfig:
        """AkaudioConfig からパイプライン設定を作成する"""
        return cls(
            inputs=inputs,
            output_dir=output_dir,
            formats=config.output.formats,
            layout=OutputLayout(
                split_output=config.output.split_output,
                banked_output=config.output.banked_output,
                no_lang=config.output.no_lang,
                legacy_names=config.output.legacy_names,
            ),
            known_filenames=config.known_names.filenames,
            known_events=config.known_names.events,
            index_file=config.index_file,
            workers=config.workers,
            vgmstream_path=config.tools.vgmstream,
            ffmpeg_path=config.tools.ffmpeg,
            vgmstream_timeout=config.timeouts.vgmstream,
            ffmpeg_timeout=config.timeouts.ffmpeg,
            retry=RetryConfig(
                max_attempts=config.retry.max_attempts,
                backoff_base=config.retry.backoff_base,
                backoff_multiplier=config.retry.backoff_multiplier,
            ),
        )

    @property
    def wem_root(self) -> Path:
        """抽出したアセットの出力ルート"""
        return self.output_dir / "wem"

    @property
    def wav_root(self) -> Path:
        """WAVの出力ルート"""
        return self.output_dir / "wav"

    @property
    def ogg_root(self) -> Path:
        """OGGの出力ルート"""
        return self.output_dir / "ogg"

    @property
    def transcode_requested(self) -> bool:
        """WAVまたはOGGの出力が要求されているか"""
        return "wav" in self.formats or "ogg" in self.formats

    def resolve_index_file(self) -> Path:
        """インデックスファイルのパスを決定する"""
        return self.index_file or get_index_path(self.output_dir)


class AssetStatus(Enum):
    """アセットの処理結果"""

    WRITTEN = "written"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class AssetReport:
    """アセット1件の処理結果

    Attributes:
        relative_path: フォーマットルートからの相対パス
        status: 処理結果
        message: 失敗時のメッセージ
    """

    relative_path: str
    status: AssetStatus
    message: str = ""


@dataclass
class FileReport:
    """入力ファイル1件の処理結果

    Attributes:
        source: 入力ファイルのパス
        container: 判定されたコンテナ種別
        assets: アセットごとの処理結果
        error: ファイル全体が失敗した場合のメッセージ
        failed_groups: 失敗した入れ子コンテナ（パッケージ内のバンクなど）
        cancelled: キャンセルにより処理されなかったか
    """

    source: Path
    container: ContainerType | None = None
    assets: list[AssetReport] = field(default_factory=list)
    error: str = ""
    failed_groups: list[str] = field(default_factory=list)
    cancelled: bool = False

    def count(self, status: AssetStatus) -> int:
        """指定ステータスのアセット数"""
        return sum(1 for asset in self.assets if asset.status is status)

    @property
    def success(self) -> bool:
        """ファイル全体が成功したか"""
        return (
            not self.error
            and not self.cancelled
            and not self.failed_groups
            and self.count(AssetStatus.FAILED) == 0
        )


@dataclass
class PipelineResult:
    """パイプライン実行結果

    Attributes:
        success: すべての入力ファイルが成功したか
        output_path: 出力ディレクトリ（検証エラー時はNone）
        error_message: エラーメッセージ（成功時は空文字列）
        phases_completed: 完了したフェーズのリスト
        statistics: 実行統計情報（ファイル数、書き込み数、スキップ数など）
        reports: 入力ファイルごとの処理結果
        cancelled: キャンセルされたか
    """

    success: bool
    output_path: Path | None
    error_message: str = ""
    phases_completed: list[PipelinePhase] = field(default_factory=list)
    statistics: dict[str, Any] = field(default_factory=dict)
    reports: list[FileReport] = field(default_factory=list)
    cancelled: bool = False

    @property
    def failed_files(self) -> list[FileReport]:
        """失敗した入力ファイル"""
        return [report for report in self.reports if not report.success]


class ExtractionPipeline:
    """抽出パイプラインオーケストレーター

    入力ファイルを有限個のワーカーで並列に処理する。各ワーカーは1ファイルを最後まで処理する。
    ファイル単位の失敗は FileReport に記録され、他のファイルの処理は継続する。

    使用例:
        >>> config = PipelineConfig(inputs=(Path("Audio"),), output_dir=Path("out"))
        >>> pipeline = ExtractionPipeline(config)
        >>> errors = pipeline.validate()
        >>> if not errors:
        ...     result = pipeline.run()
    """

    def __init__(
        self,
        config: PipelineConfig,
        logger: ExtractLogger | None = None,
        transcoder: TranscodeManager | None = None,
    ) -> None:
        """パイプラインを初期化する

        Args:
            config: パイプライン設定
            logger: ログ出力（Noneの場合は標準のloggingのみ）
            transcoder: 変換マネージャー（Noneの場合は設定から作成）
        """
        self._config = config
        self._logger = logger
        self._cancel_event = threading.Event()
        self._transcoder = transcoder or self._create_transcoder()
        self._known = KnownNames()
        self._index = FingerprintIndex()
        self._lock = threading.Lock()
        self._counters = {status: 0 for status in AssetStatus}

    @property
    def config(self) -> PipelineConfig:
        """パイプライン設定を取得する"""
        return self._config

    @property
    def cancelled(self) -> bool:
        """キャンセルされたか"""
        return self._cancel_event.is_set()

    def _create_transcoder(self) -> TranscodeManager:
        registry = ProcessRegistry()
        return TranscodeManager(
            wav_converter=WemToWavConverter(
                executable=self._config.vgmstream_path,
                timeout=self._config.vgmstream_timeout,
                registry=registry,
            ),
            ogg_converter=WavToOggConverter(
                executable=self._config.ffmpeg_path,
                timeout=self._config.ffmpeg_timeout,
                registry=registry,
            ),
            retry_config=self._config.retry,
            registry=registry,
            cancel_event=self._cancel_event,
        )

    def cancel(self) -> None:
        """実行をキャンセルする

        新しい入力ファイルの処理を開始しなくなり、実行中の変換ツールは終了させる。
        """
        self._cancel_event.set()
        self._transcoder.cancel()

    def validate(self) -> list[str]:
        """設定を検証し、エラーメッセージのリストを返す

        Returns:
            エラーメッセージのリスト（エラーがない場合は空リスト）
        """
        errors: list[str] = []

        if not self._config.inputs:
            errors.append("入力ファイルが指定されていません")

        for path in self._config.inputs:
            if not path.exists():
                errors.append(f"入力ファイルが見つかりません: {path}")

        unknown = [fmt for fmt in self._config.formats if fmt not in SUPPORTED_FORMATS]
        if unknown:
            errors.append(f"未対応の出力フォーマットです: {', '.join(unknown)}")

        for table in (self._config.known_filenames, self._config.known_events):
            if table is not None and not table.exists():
                errors.append(f"既知のファイル名テーブルが見つかりません: {table}")

        if self._config.output_dir.exists() and not self._config.output_dir.is_dir():
            errors.append(f"出力先がディレクトリではありません: {self._config.output_dir}")

        return errors

    def collect_inputs(self) -> list[Path]:
        """入力ファイルを収集する

        ディレクトリは再帰的に走査し、INPUT_SUFFIXES の拡張子を持つファイルを集める。
        直接指定されたファイルは拡張子に関係なく対象とする。

        Returns:
            重複を除いた入力ファイルのリスト
        """
        files: list[Path] = []
        for path in self._config.inputs:
            if path.is_dir():
                files.extend(
                    sorted(
                        child
                        for child in path.rglob("*")
                        if child.is_file() and child.suffix.lower() in INPUT_SUFFIXES
                    )
                )
            elif path.is_file():
                files.append(path)
        return list(dict.fromkeys(files))

    def run(self, progress_callback: ProgressCallback | None = None) -> PipelineResult:
        """パイプラインを実行する

        インデックスは開始時に1回だけ読み込み、終了時（中断時を含む）に1回だけ書き出す。

        Args:
            progress_callback: 進捗通知用コールバック（オプション）

        Returns:
            パイプライン実行結果
        """
        start_time = time.time()

        errors = self.validate()
        if errors:
            return PipelineResult(success=False, output_path=None, error_message=errors[0])

        phases_completed: list[PipelinePhase] = []

        files = self.collect_inputs()
        self._notify(progress_callback, PipelinePhase.SCAN, len(files), len(files))
        phases_completed.append(PipelinePhase.SCAN)

        try:
            self._known = KnownNames.load(self._config.known_filenames, self._config.known_events)
            self._index = FingerprintIndex.load(self._config.resolve_index_file())
        except (OSError, IOFailureError) as e:
            return PipelineResult(
                success=False,
                output_path=None,
                error_message=str(e),
                phases_completed=phases_completed,
            )

        reports: list[FileReport] = []
        flush_error = ""
        workers = self._config.workers or TranscodeManager.calculate_workers()
        executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="akaudio")

        try:
            self._notify(progress_callback, PipelinePhase.EXTRACT, 0, len(files))
            futures = {executor.submit(self.process_file, path): path for path in files}
            for future in as_completed(futures):
                report = future.result()
                reports.append(report)
                self._notify(
                    progress_callback,
                    PipelinePhase.EXTRACT,
                    len(reports),
                    len(files),
                    report.source.name,
                )
            phases_completed.append(PipelinePhase.EXTRACT)
        except KeyboardInterrupt:
            self.cancel()
            raise
        finally:
            executor.shutdown(wait=True, cancel_futures=True)
            flush_error = self._flush_index()
            if not flush_error:
                phases_completed.append(PipelinePhase.INDEX)

        reports.sort(key=lambda report: str(report.source))
        statistics = self._build_statistics(reports)
        statistics["total_time_seconds"] = round(time.time() - start_time, 2)

        failed = [report for report in reports if not report.success]
        error_message = flush_error or (
            f"{len(failed)} 件のファイルで失敗しました" if failed else ""
        )
        if self.cancelled:
            error_message = error_message or "キャンセルされました"

        return PipelineResult(
            success=not failed and not flush_error and not self.cancelled,
            output_path=self._config.output_dir,
            error_message=error_message,
            phases_completed=phases_completed,
            statistics=statistics,
            reports=reports,
            cancelled=self.cancelled,
        )

    def _notify(
        self,
        callback: ProgressCallback | None,
        phase: PipelinePhase,
        current: int,
        total: int,
        message: str = "",
    ) -> None:
        if callback is not None:
            callback(PipelineProgress(phase=phase, current=current, total=total, message=message))

    def _flush_index(self) -> str:
        """インデックスを書き出し、失敗時はメッセージを返す"""
        try:
            self._index.flush()
        except IOFailureError as e:
            self._error(str(e))
            return str(e)
        return ""

    def _build_statistics(self, reports: list[FileReport]) -> dict[str, Any]:
        with self._lock:
            counters = dict(self._counters)
        return {
            "files": len(reports),
            "failed_files": sum(1 for report in reports if not report.success),
            "written": counters[AssetStatus.WRITTEN],
            "skipped": counters[AssetStatus.SKIPPED],
            "failed": counters[AssetStatus.FAILED],
            "output_path": str(self._config.output_dir),
            "index_file": str(self._config.resolve_index_file()),
        }

    def process_file(self, path: Path) -> FileReport:
        """入力ファイル1件を処理する

        例外はこのメソッドの外へ送出せず、FileReport に記録する。

        Args:
            path: 入力ファイルのパス

        Returns:
            処理結果
        """
        report = FileReport(source=path)
        if self.cancelled:
            report.cancelled = True
            return report

        try:
            data = path.read_bytes()
        except OSError as e:
            report.error = f"入力ファイルを読み込めません: {e}"
            self._error(f"{path.name}: {report.error}")
            return report

        container = detect_container(data)
        report.container = container
        self._debug(f"{path.name}: {container.value}")

        try:
            if container is ContainerType.PACKAGE:
                self._extract_package(decode_package(data), path, report)
            elif container.is_obfuscated:
                package = decode_package(decrypt_package_header(data))
                self._extract_package(package, path, report, obfuscated=True)
            elif container is ContainerType.BANK:
                self._extract_bank(decode_bank(data), path, report)
            else:
                self._emit_asset(data, AssetRef(AssetKind.LOOSE, 0, path), report)
        except AkaudioError as e:
            report.error = str(e)
            self._error(f"{path.name}: {e}")
        except Exception as e:
            report.error = f"予期しないエラー: {e}"
            logger.exception(f"{path.name} の処理中に予期しないエラーが発生しました")
            self._error(f"{path.name}: {report.error}")

        if self.cancelled and not report.error:
            report.cancelled = True
        return report

    def _extract_package(
        self,
        package: Package,
        path: Path,
        report: FileReport,
        *,
        obfuscated: bool = False,
    ) -> None:
        """パッケージ内のバンク、ストリーム、外部ファイルを処理する

        バンクテーブルのエントリは中身を判定し、バンクであれば独立したコンテナとして展開する。
        バンク以外のデータはストリームと同じ命名で1つのアセットとして書き出す。
        バンクの解析に失敗しても他のエントリの処理は継続する。
        """
        language_count = len(package.languages)

        for entry in package.banks:
            if self.cancelled:
                return
            language = language_name(package, entry)
            try:
                data = package.get_bytes(entry)
                if obfuscated and detect_container(data) is not ContainerType.BANK:
                    data = self._recover_asset(data, entry.asset_id, path)
                if detect_container(data) is not ContainerType.BANK:
                    ref = AssetRef(
                        kind=AssetKind.STREAM,
                        asset_id=entry.asset_id,
                        source=path,
                        language=language,
                        language_count=language_count,
                    )
                    self._emit_asset(data, ref, report)
                    continue
                bank = decode_bank(data)
                self._extract_bank(
                    bank, path, report, language=language, language_count=language_count
                )
            except (InvalidFormatError, OutOfBoundsError) as e:
                group = f"bank {entry.asset_id}: {e}"
                report.failed_groups.append(group)
                self._warning(f"{path.name}: {group}")

        tables: tuple[tuple[tuple[FileEntry, ...], AssetKind], ...] = (
            (package.streams.entries, AssetKind.STREAM),
            (package.externals.entries, AssetKind.EXTERNAL),
        )
        for entries, kind in tables:
            for entry in entries:
                if self.cancelled:
                    return
                ref = AssetRef(
                    kind=kind,
                    asset_id=entry.asset_id,
                    source=path,
                    language=language_name(package, entry),
                    language_count=language_count,
                )
                try:
                    data = package.get_bytes(entry)
                except OutOfBoundsError as e:
                    group = f"{kind.value} {entry.asset_id}: {e}"
                    report.failed_groups.append(group)
                    self._warning(f"{path.name}: {group}")
                    continue
                if obfuscated:
                    data = self._recover_asset(data, entry.asset_id, path)
                self._emit_asset(data, ref, report)

    def _extract_bank(
        self,
        bank: Bank,
        path: Path,
        report: FileReport,
        *,
        language: str | None = None,
        language_count: int = 0,
    ) -> None:
        """バンクのDIDX/DATAに埋め込まれたアセットを処理する"""
        if not bank.has_assets:
            self._debug(f"{path.name}: バンク {bank.header.bank_id} は埋め込みアセットを持ちません")
            return

        occurrences: dict[int, int] = {}
        for entry, data in bank.iter_assets():
            if self.cancelled:
                return
            occurrence = occurrences.get(entry.asset_id, 0)
            occurrences[entry.asset_id] = occurrence + 1
            ref = AssetRef(
                kind=AssetKind.BANK_MEDIA,
                asset_id=entry.asset_id,
                source=path,
                language=language,
                language_count=language_count,
                bank_id=bank.header.bank_id,
                occurrence=occurrence,
            )
            self._emit_asset(data, ref, report)

    def _recover_asset(self, data: bytes, asset_id: int, path: Path) -> bytes:
        """難読化パッケージのアセットを復号する（ベストエフォート）

        復号結果が既知のコンテナであればそれを返し、そうでなければ元のバイト列を返す。
        """
        try:
            return decrypt_asset(data, asset_id, verify=True)
        except CipherMismatchError as e:
            if detect_container(data) is ContainerType.OPAQUE:
                self._warning(f"{path.name}: {e}。復号前のデータをそのまま出力します")
            return data

    def _emit_asset(self, data: bytes, ref: AssetRef, report: FileReport) -> None:
        """アセットを書き出す

        インデックスのハッシュが一致し、出力ファイルが存在する場合はスキップする。
        変換に失敗したアセットはインデックスに記録せず、次回の実行で再処理させる。
        """
        extension = sniff_extension(data)
        relative = resolve_relative_path(ref, extension, self._config.layout, self._known)
        key = relative.as_posix()
        dest = self._config.wem_root / relative
        digest = compute_fingerprint(data)

        if self._index.is_unchanged(key, digest) and dest.exists():
            self._add_asset(report, AssetReport(key, AssetStatus.SKIPPED))
            return

        try:
            self._write_with_retry(dest, data)
        except IOFailureError as e:
            self._add_asset(report, AssetReport(key, AssetStatus.FAILED, str(e)))
            return

        if extension == ".wem" and self._config.transcode_requested:
            outcome = self._transcoder.transcode(
                TranscodeRequest(
                    wem_path=dest,
                    wav_path=self._config.wav_root / relative.with_suffix(".wav"),
                    ogg_path=(
                        self._config.ogg_root / relative.with_suffix(".ogg")
                        if "ogg" in self._config.formats
                        else None
                    ),
                    keep_wav="wav" in self._config.formats,
                )
            )
            if not outcome.is_success:
                self._add_asset(report, AssetReport(key, AssetStatus.FAILED, outcome.message))
                return

        self._index.record(key, digest)
        self._add_asset(report, AssetReport(key, AssetStatus.WRITTEN))

    def _write_with_retry(self, dest: Path, data: bytes) -> None:
        """リトライ付きでファイルを書き込む

        Raises:
            IOFailureError: 最大試行回数まで失敗した場合
        """
        retry = self._config.retry
        last_error: OSError | None = None

        for attempt in range(1, retry.max_attempts + 1):
            try:
                dest.parent.mkdir(parents=True, exist_ok=True)
                dest.write_bytes(data)
                return
            except OSError as e:
                last_error = e
            if attempt < retry.max_attempts and self._cancel_event.wait(retry.backoff(attempt)):
                break

        raise IOFailureError(f"ファイルを書き込めません: {dest}: {last_error}") from last_error

    def _add_asset(self, report: FileReport, asset: AssetReport) -> None:
        report.assets.append(asset)
        with self._lock:
            self._counters[asset.status] += 1
        if asset.status is AssetStatus.FAILED:
            self._warning(f"{asset.relative_path}: {asset.message}")
        elif self._logger is not None:
            self._logger.log_asset(asset.relative_path, asset.status.value)

    def _debug(self, message: str) -> None:
        if self._logger is not None:
            self._logger.debug(message)
        else:
            logger.debug(message)

    def _warning(self, message: str) -> None:
        if self._logger is not None:
            self._logger.warning(message)
        else:
            logger.warning(message)

    def _error(self, message: str) -> None:
        if self._logger is not None:
            self._logger.error(message)
        else:
            logger.error(message)
