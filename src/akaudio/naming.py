"""出力パス解決モジュール

抽出したアセットの出力先相対パスを決定する。
パスは以下の優先順位で組み立てる:

1. split_output 有効時: 入力ファイル名（拡張子なし）のサブフォルダ
2. banked_output 有効時: バンク内アセットのみバンクIDのサブフォルダ
3. 言語サブフォルダ（既知の名前に一致した場合、または no_lang 有効かつ言語が1つ以下の場合は省略）
4. ファイル名（既知の名前に一致した場合はその相対パス）+ 拡張子

同じバンク内でIDが重複する場合、2つ目以降のファイル名には _1, _2 ... を付ける。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path, PurePosixPath

import chardet


class AssetKind(Enum):
    """アセットの出どころ"""

    BANK_MEDIA = "bank_media"
    """バンクのDIDX/DATAに埋め込まれたアセット"""

    STREAM = "stream"
    """パッケージのストリームテーブルのアセット"""

    EXTERNAL = "external"
    """パッケージの外部ファイルテーブルのアセット"""

    LOOSE = "loose"
    """入力ファイルそのもの（.wem や不明な形式）"""


@dataclass(frozen=True)
class OutputLayout:
    """出力レイアウト設定

    Attributes:
        split_output: 入力ファイルごとにサブフォルダを作るか
        banked_output: バンクIDごとにサブフォルダを作るか
        no_lang: 言語が1つ以下の場合に言語フォルダを省略するか
        legacy_names: バンク内アセットとストリームを10進IDで命名するか
    """

    split_output: bool = False
    banked_output: bool = False
    no_lang: bool = False
    legacy_names: bool = False


@dataclass(frozen=True)
class AssetRef:
    """出力パス解決に必要なアセットの属性

    Attributes:
        kind: アセットの出どころ
        asset_id: アセットID
        source: 入力ファイルのパス
        language: 言語名（言語を持たない場合はNone）
        language_count: 所属パッケージの言語数
        bank_id: 所属バンクのID（バンク内アセットのみ）
        occurrence: 同じバンク内で同じIDが現れた順番（0始まり）
    """

    kind: AssetKind
    asset_id: int
    source: Path
    language: str | None = None
    language_count: int = 0
    bank_id: int | None = None
    occurrence: int = 0


@dataclass(frozen=True)
class KnownNames:
    """既知のファイル名テーブル

    Attributes:
        filenames: 16桁16進ID -> 相対パス（外部ファイル用）
        events: 10進ID -> 相対パス（旧命名のバンク内アセット用）
    """

    filenames: dict[str, str] = field(default_factory=dict)
    events: dict[str, str] = field(default_factory=dict)

    @classmethod
    def load(cls, filenames_path: Path | None = None, events_path: Path | None = None) -> KnownNames:
        """TSVファイルから読み込む

        Args:
            filenames_path: Known_Filenames.tsv のパス
            events_path: Known_Events.tsv のパス

        Returns:
            KnownNames
        """
        return cls(
            filenames=load_tsv(filenames_path) if filenames_path else {},
            events=load_tsv(events_path) if events_path else {},
        )


def load_tsv(path: Path) -> dict[str, str]:
    """2列のTSVを読み込む

    エンコーディングはchardetで推定する。2列未満の行は無視する。

    Args:
        path: TSVファイルのパス

    Returns:
        1列目 -> 2列目

    Raises:
        FileNotFoundError: ファイルが存在しない場合
    """
    raw = path.read_bytes()
    encoding = chardet.detect(raw).get("encoding") or "utf-8"
    text = raw.decode(encoding, errors="replace")

    table: dict[str, str] = {}
    for line in text.splitlines():
        columns = line.split("\t")
        if len(columns) >= 2:
            table[columns[0].strip()] = columns[1].strip()
    return table


def _strip_extension(known_path: str) -> str:
    """既知のパスからディレクトリ + 拡張子なしのファイル名を取り出す"""
    path = PurePosixPath(known_path.replace("\\", "/"))
    return str(path.parent / path.stem) if str(path.parent) != "." else path.stem


def resolve_name(ref: AssetRef, layout: OutputLayout, known: KnownNames) -> tuple[str, bool]:
    """拡張子なしのファイル名を決定する

    Args:
        ref: アセット属性
        layout: 出力レイアウト
        known: 既知のファイル名テーブル

    Returns:
        (ファイル名, 既知の名前に一致したか)
    """
    if ref.kind is AssetKind.EXTERNAL:
        name = f"{ref.asset_id:016x}"
        matched = known.filenames.get(name)
        if matched:
            return _strip_extension(matched), True
        return name, False

    if ref.kind is AssetKind.STREAM:
        return (str(ref.asset_id) if layout.legacy_names else f"{ref.asset_id:08x}"), False

    if ref.kind is AssetKind.BANK_MEDIA:
        if not layout.legacy_names:
            return f"{ref.asset_id:08x}", False
        name = str(ref.asset_id)
        matched = known.events.get(name)
        if matched:
            return _strip_extension(matched), True
        return name, False

    return ref.source.stem, False


def resolve_relative_path(
    ref: AssetRef,
    extension: str,
    layout: OutputLayout,
    known: KnownNames | None = None,
) -> PurePosixPath:
    """フォーマットルートからの相対出力パスを決定する

    Args:
        ref: アセット属性
        extension: ドット付きの拡張子
        layout: 出力レイアウト
        known: 既知のファイル名テーブル

    Returns:
        相対出力パス

    Example:
        >>> ref = AssetRef(AssetKind.STREAM, 0x1234, Path("a.pck"), "sfx", 1)
        >>> str(resolve_relative_path(ref, ".wem", OutputLayout()))
        'sfx/00001234.wem'
    """
    name, matched = resolve_name(ref, layout, known or KnownNames())
    if ref.occurrence:
        name = f"{name}_{ref.occurrence}"

    parts: list[str] = []
    if layout.split_output:
        parts.append(ref.source.stem)
    if layout.banked_output and ref.kind is AssetKind.BANK_MEDIA and ref.bank_id is not None:
        parts.append(str(ref.bank_id))

    suppress_language = matched or (layout.no_lang and ref.language_count <= 1)
    if ref.language and not suppress_language:
        parts.append(ref.language)

    return PurePosixPath(*parts, f"{name}{extension}")
