"""フィンガープリントインデックスモジュール

抽出済みアセットの内容ハッシュを実行をまたいで記録し、
変更のないアセットの書き込みをスキップするための永続インデックスを提供する。

インデックスは実行開始時に1回だけ読み込み、実行中はロックを通してのみ更新し、
実行終了時（中断時を含む）に1回だけ書き出す。
"""

from __future__ import annotations

import csv
import hashlib
import io
import os
import threading
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from akaudio.errors import IOFailureError

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


@dataclass(frozen=True)
class IndexRecord:
    """インデックスの1レコード

    Attributes:
        content_hash: 内容のMD5（16進小文字）
        last_seen: 最後に書き込んだ日時
    """

    content_hash: str
    last_seen: str


def compute_fingerprint(data: bytes | bytearray | memoryview) -> str:
    """バイト列のフィンガープリント（MD5の16進表記）を計算する"""
    return hashlib.md5(data).hexdigest()


class FingerprintIndex:
    """相対パス -> IndexRecord の永続マップ

    すべての参照・更新は内部ロックを通して行うため、複数スレッドから安全に呼び出せる。

    使用例:
        >>> index = FingerprintIndex.load(Path("checksums.csv"))
        >>> if not index.is_unchanged("sfx/00001234.wem", digest):
        ...     index.record("sfx/00001234.wem", digest)
        >>> index.flush()
    """

    def __init__(self, path: Path | None = None, records: dict[str, IndexRecord] | None = None) -> None:
        """インデックスを初期化する

        Args:
            path: CSVファイルのパス（Noneの場合は書き出さない）
            records: 初期レコード
        """
        self._path = path
        self._records: dict[str, IndexRecord] = dict(records or {})
        self._lock = threading.Lock()

    @property
    def path(self) -> Path | None:
        """CSVファイルのパス"""
        return self._path

    @classmethod
    def load(cls, path: Path | None) -> FingerprintIndex:
        """CSVファイルからインデックスを読み込む

        ファイルが存在しない場合は空のインデックスを返す。
        列数が3未満の行は無視する。

        Args:
            path: CSVファイルのパス

        Returns:
            読み込んだインデックス

        Raises:
            IOFailureError: ファイルの読み込みに失敗した場合
        """
        if path is None or not path.exists():
            return cls(path)

        try:
            text = path.read_text(encoding="utf-8")
        except OSError as e:
            raise IOFailureError(f"インデックスを読み込めません: {path}: {e}") from e

        records: dict[str, IndexRecord] = {}
        for row in csv.reader(io.StringIO(text)):
            if len(row) < 3 or not row[0]:
                continue
            records[row[0]] = IndexRecord(content_hash=row[1], last_seen=row[-1])
        return cls(path, records)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def __contains__(self, relative_path: object) -> bool:
        with self._lock:
            return relative_path in self._records

    def get(self, relative_path: str) -> IndexRecord | None:
        """レコードを取得する"""
        with self._lock:
            return self._records.get(relative_path)

    def is_unchanged(self, relative_path: str, content_hash: str) -> bool:
        """記録済みのハッシュと一致するかどうか"""
        record = self.get(relative_path)
        return record is not None and record.content_hash == content_hash

    def record(self, relative_path: str, content_hash: str, now: datetime | None = None) -> None:
        """レコードを追加または更新する

        Args:
            relative_path: フォーマットルートからの相対パス（POSIX形式）
            content_hash: 内容のハッシュ
            now: 記録日時（Noneの場合は現在日時）
        """
        timestamp = (now or datetime.now()).strftime(TIMESTAMP_FORMAT)
        with self._lock:
            self._records[relative_path] = IndexRecord(content_hash, timestamp)

    def discard(self, relative_path: str) -> None:
        """レコードを削除する"""
        with self._lock:
            self._records.pop(relative_path, None)

    def snapshot(self) -> dict[str, IndexRecord]:
        """現在のレコードのコピーを返す"""
        with self._lock:
            return dict(self._records)

    def flush(self) -> None:
        """パス順にソートしてCSVファイルへ書き出す

        一時ファイルに書き込んでから置き換えるため、書き出し中に中断しても既存のファイルは壊れない。

        Raises:
            IOFailureError: 書き込みに失敗した場合
        """
        if self._path is None:
            return

        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        for relative_path, record in sorted(self.snapshot().items()):
            writer.writerow([relative_path, record.content_hash, record.last_seen])

        temp_path = self._path.with_name(f"{self._path.name}.tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            temp_path.write_text(buffer.getvalue(), encoding="utf-8")
            os.replace(temp_path, self._path)
        except OSError as e:
            raise IOFailureError(f"インデックスを書き出せません: {self._path}: {e}") from e
