"""ファイルパッケージ(.pck)解析モジュール

AKPKヘッダー、言語マップ、3つのファイルテーブル（バンク、ストリーム、外部ファイル）を読み取り、
各エントリのバイト列を元のバッファから遅延読み取りする機能を提供する。

エントリは所属するテーブルやパッケージへの参照を持たない。
言語名やパスの解決はパッケージを明示的に受け取る関数で行う。
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field

from akaudio.errors import InvalidFormatError
from akaudio.parser.cursor import ByteCursor

AKPK_SIGNATURE = b"AKPK"

# シグネチャ(4) + ヘッダーサイズ(4)
HEADER_PREFIX_SIZE = 8

# バージョン(4) + 言語マップ/バンク/ストリームのサイズ(4 x 3)
# 外部ファイルテーブルを持たない旧形式のヘッダー本体サイズ（テーブル部を除く）
_LEGACY_HEADER_FIELDS_SIZE = 0x10

# 32bit ID: ID(4) + ブロックサイズ(4) + ファイルサイズ(4) + ブロック位置(4) + 言語ID(4)
ENTRY_SIZE_32 = 20
# 64bit ID: ID(8) + 残り(16)
ENTRY_SIZE_64 = 24


@dataclass(frozen=True)
class PackageHeader:
    """AKPKヘッダー

    Attributes:
        signature: シグネチャ（AKPK）
        header_size: シグネチャとサイズフィールドを除いたヘッダー全体のバイト数
        version: フォーマットバージョン
        language_map_size: 言語マップのバイト数
        banks_table_size: バンクテーブルのバイト数
        streams_table_size: ストリームテーブルのバイト数
        externals_table_size: 外部ファイルテーブルのバイト数（旧形式では0）
    """

    signature: bytes
    header_size: int
    version: int
    language_map_size: int
    banks_table_size: int
    streams_table_size: int
    externals_table_size: int = 0

    @property
    def has_externals(self) -> bool:
        """外部ファイルテーブルのサイズフィールドを持つかどうか"""
        return not _is_legacy_layout(
            self.header_size,
            self.language_map_size,
            self.banks_table_size,
            self.streams_table_size,
        )


@dataclass(frozen=True)
class LanguageMap:
    """言語ID -> 言語名

    Attributes:
        names: 言語ID -> 言語名
        wide: 文字列が2バイト文字で記録されていたかどうか
    """

    names: dict[int, str] = field(default_factory=dict)
    wide: bool = False

    def __len__(self) -> int:
        return len(self.names)

    def name_for(self, language_id: int) -> str:
        """言語名を返す（未登録のIDはIDの10進表記）"""
        return self.names.get(language_id, str(language_id))


@dataclass(frozen=True)
class FileEntry:
    """ファイルテーブルのエントリ

    Attributes:
        asset_id: アセットID（テーブルによって32bitまたは64bit）
        block_size: ブロックサイズ
        file_size: バイト数
        block_index: 開始ブロック
        language_id: 言語ID
    """

    asset_id: int
    block_size: int
    file_size: int
    block_index: int
    language_id: int

    @property
    def offset(self) -> int:
        """パッケージ先頭からの絶対オフセット"""
        return self.block_index * self.block_size


@dataclass(frozen=True)
class FileTable:
    """ファイルテーブル

    Attributes:
        entries: 出現順のエントリ
        wide_ids: 64bit IDで記録されていたかどうか
    """

    entries: tuple[FileEntry, ...] = ()
    wide_ids: bool = False

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[FileEntry]:
        return iter(self.entries)


@dataclass(frozen=True)
class Package:
    """解析済みファイルパッケージ

    アセットのバイト列は get_bytes() で元のバッファから読み取る。
    """

    header: PackageHeader
    languages: LanguageMap
    banks: FileTable
    streams: FileTable
    externals: FileTable
    data: bytes = field(repr=False, default=b"")

    @property
    def size(self) -> int:
        """元バッファのバイト数"""
        return len(self.data)

    def get_bytes(self, entry: FileEntry) -> bytes:
        """エントリのバイト列を読み取る

        呼び出しごとに独立したカーソルを使うため、複数スレッドから同時に呼び出せる。

        Args:
            entry: ファイルテーブルのエントリ

        Returns:
            entry.offset から entry.file_size バイト

        Raises:
            OutOfBoundsError: エントリがバッファの範囲外を指す場合
        """
        cursor = ByteCursor(self.data)
        cursor.seek_to(entry.offset)
        return cursor.read_bytes(entry.file_size)


@dataclass(frozen=True)
class PackageSummary:
    """パッケージの概要"""

    version: int
    size_bytes: int
    languages: tuple[tuple[int, str], ...]
    bank_count: int
    stream_count: int
    external_count: int


def _is_legacy_layout(header_size: int, lang: int, banks: int, streams: int) -> bool:
    return lang + banks + streams + _LEGACY_HEADER_FIELDS_SIZE >= header_size


def _read_header(cursor: ByteCursor) -> PackageHeader:
    signature = cursor.read_bytes(4)
    if signature != AKPK_SIGNATURE:
        raise InvalidFormatError(AKPK_SIGNATURE, signature, ".pck")

    header_size = cursor.read_u32()
    version = cursor.read_u32()
    language_map_size = cursor.read_u32()
    banks_table_size = cursor.read_u32()
    streams_table_size = cursor.read_u32()

    externals_table_size = 0
    if not _is_legacy_layout(header_size, language_map_size, banks_table_size, streams_table_size):
        externals_table_size = cursor.read_u32()

    return PackageHeader(
        signature=signature,
        header_size=header_size,
        version=version,
        language_map_size=language_map_size,
        banks_table_size=banks_table_size,
        streams_table_size=streams_table_size,
        externals_table_size=externals_table_size,
    )


def _read_language_map(cursor: ByteCursor) -> LanguageMap:
    """言語マップを読み取る

    文字列のオフセットは言語マップ先頭からの相対位置。
    最初の文字列の2バイト目が0であれば2バイト文字とみなす。
    """
    if cursor.remaining < 4:
        return LanguageMap()

    count = cursor.read_u32()
    offsets = [(cursor.read_u32(), cursor.read_u32()) for _ in range(count)]
    if not offsets:
        return LanguageMap()

    cursor.seek_to(offsets[0][0])
    wide = cursor.peek_bytes(2)[1] == 0

    names: dict[int, str] = {}
    for offset, language_id in offsets:
        cursor.seek_to(offset)
        names[language_id] = cursor.read_wcstring() if wide else cursor.read_cstring()

    return LanguageMap(names=names, wide=wide)


def _read_file_table(cursor: ByteCursor, *, force_wide: bool = False) -> FileTable:
    """ファイルテーブルを読み取る

    テーブルのバイト数からエントリ幅が24バイトと判断できる場合は64bit IDとして読む。
    ヘッダーのバージョンはIDの幅を示さないため参照しない。
    """
    if cursor.remaining < 4:
        return FileTable()

    count = cursor.read_u32()
    if count == 0:
        return FileTable()

    wide = force_wide or cursor.remaining // count == ENTRY_SIZE_64
    entries = tuple(
        FileEntry(
            asset_id=cursor.read_u64() if wide else cursor.read_u32(),
            block_size=cursor.read_u32(),
            file_size=cursor.read_u32(),
            block_index=cursor.read_u32(),
            language_id=cursor.read_u32(),
        )
        for _ in range(count)
    )
    return FileTable(entries=entries, wide_ids=wide)


def decode_package(data: bytes | bytearray | memoryview) -> Package:
    """ファイルパッケージを解析する

    Args:
        data: .pck ファイルのバイト列

    Returns:
        解析済みのPackage

    Raises:
        InvalidFormatError: AKPKシグネチャで始まらない場合
        OutOfBoundsError: ヘッダーやテーブルがバッファ終端を越える場合
    """
    raw = bytes(data)
    cursor = ByteCursor(raw)
    header = _read_header(cursor)

    languages = _read_language_map(cursor.sub_cursor(header.language_map_size))
    banks = _read_file_table(cursor.sub_cursor(header.banks_table_size))
    streams = _read_file_table(cursor.sub_cursor(header.streams_table_size))
    externals = _read_file_table(cursor.sub_cursor(header.externals_table_size), force_wide=True)

    return Package(
        header=header,
        languages=languages,
        banks=banks,
        streams=streams,
        externals=externals,
        data=raw,
    )


def language_name(package: Package, entry: FileEntry) -> str:
    """エントリの言語名を返す"""
    return package.languages.name_for(entry.language_id)


def get_directory(package: Package, entry: FileEntry) -> str:
    """エントリの言語ディレクトリ（末尾スラッシュ付き）を返す"""
    return f"{language_name(package, entry)}/"


def get_path(package: Package, entry: FileEntry) -> str:
    """拡張子なしの相対パスを返す"""
    return f"{language_name(package, entry)}/{entry.asset_id}"


def get_bank_path(package: Package, entry: FileEntry) -> str:
    """バンクエントリの相対パスを返す

    Example:
        >>> get_bank_path(package, entry)
        'english(us)/100.bnk'
    """
    return f"{get_path(package, entry)}.bnk"


def package_summary(package: Package) -> PackageSummary:
    """パッケージの概要を作成する"""
    return PackageSummary(
        version=package.header.version,
        size_bytes=package.size,
        languages=tuple(sorted(package.languages.names.items())),
        bank_count=len(package.banks),
        stream_count=len(package.streams),
        external_count=len(package.externals),
    )
