"""Converter基底クラスモジュール

音声変換を行うすべてのConverterの基底クラスと共通データ型を定義する。
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path


class ConversionStatus(Enum):
    """変換ステータス

    ファイル変換処理の結果ステータスを表す列挙型。
    成功、スキップ、失敗の3状態を持つ。
    """

    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class ConversionResult:
    """変換結果を表すデータクラス

    Attributes:
        source_path: 変換元ファイルのパス
        dest_path: 変換先ファイルのパス（変換失敗・スキップ時はNone）
        status: 変換ステータス
        message: 追加メッセージ（エラー詳細等）
        bytes_before: 変換前のファイルサイズ（バイト）
        bytes_after: 変換後のファイルサイズ（バイト）
    """

    source_path: Path
    dest_path: Path | None
    status: ConversionStatus
    message: str = ""
    bytes_before: int = 0
    bytes_after: int = 0

    @property
    def is_success(self) -> bool:
        """変換が成功したかどうかを返す"""
        return self.status == ConversionStatus.SUCCESS

    @classmethod
    def failed(cls, source: Path, message: str) -> "ConversionResult":
        """失敗結果を作成する"""
        return cls(
            source_path=source,
            dest_path=None,
            status=ConversionStatus.FAILED,
            message=message,
        )


class BaseConverter(ABC):
    """Converterの基底クラス

    外部ツールで音声ファイルを変換するクラスが継承する抽象基底クラス。
    """

    @abstractmethod
    def convert(self, source: Path, dest: Path) -> ConversionResult:
        """ファイルを変換する

        Args:
            source: 変換元ファイルのパス
            dest: 変換先ファイルのパス

        Returns:
            変換結果を表すConversionResultオブジェクト
        """
        ...

    @property
    @abstractmethod
    def supported_extensions(self) -> tuple[str, ...]:
        """対応する拡張子のタプル（ドット付き小文字形式）"""
        ...

    @property
    @abstractmethod
    def output_extension(self) -> str:
        """変換後のファイル拡張子（ドット付き小文字形式）"""
        ...

    def can_convert(self, file_path: Path) -> bool:
        """このConverterで変換可能なファイルかを判定する"""
        return file_path.suffix.lower() in self.supported_extensions

    def _get_file_size(self, path: Path) -> int:
        """ファイルサイズを取得する

        Args:
            path: ファイルパス

        Returns:
            ファイルサイズ（バイト）。ファイルが存在しない場合は0
        """
        if path.exists():
            return path.stat().st_size
        return 0
