"""コンテナ情報解析モジュール"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from akaudio.parser.bank import Chunk, decode_bank
from akaudio.parser.cipher import decrypt_package_header
from akaudio.parser.package import PackageSummary, decode_package, package_summary
from akaudio.parser.signature import ContainerType, detect_container


@dataclass(frozen=True)
class ChunkInfo:
    """チャンク情報"""

    signature: str
    size: int
    offset: int
    parsed: bool


@dataclass(frozen=True)
class BankSummary:
    """バンクの概要"""

    version: int
    bank_id: int
    language_id: int
    project_id: int
    chunks: tuple[ChunkInfo, ...]
    asset_count: int
    hirc_section_count: int


@dataclass(frozen=True)
class ContainerInfo:
    """コンテナ情報"""

    path: Path
    container: ContainerType
    size_bytes: int
    package: PackageSummary | None = None
    bank: BankSummary | None = None


def summarize_bank(data: bytes) -> BankSummary:
    """バンクの概要を作成する

    Args:
        data: .bnk のバイト列

    Returns:
        バンクの概要

    Raises:
        InvalidFormatError: BKHDシグネチャで始まらない場合
        OutOfBoundsError: チャンクがバッファ終端を越える場合
    """
    bank = decode_bank(data)
    data_index = bank.data_index
    hierarchy = bank.hierarchy
    return BankSummary(
        version=bank.header.version,
        bank_id=bank.header.bank_id,
        language_id=bank.header.language_id,
        project_id=bank.header.project_id,
        chunks=tuple(
            ChunkInfo(
                signature=chunk.signature.decode("ascii", errors="replace"),
                size=chunk.size,
                offset=chunk.offset,
                parsed=type(chunk) is not Chunk,
            )
            for chunk in bank.chunk_order
        ),
        asset_count=len(data_index.entries) if data_index is not None else 0,
        hirc_section_count=len(hierarchy.sections) if hierarchy is not None else 0,
    )


def analyze_container(path: Path) -> ContainerInfo:
    """コンテナファイルを解析する

    Args:
        path: 解析対象ファイル

    Returns:
        コンテナ情報

    Raises:
        FileNotFoundError: ファイルが存在しない場合
        InvalidFormatError: ヘッダーのシグネチャが一致しない場合
        OutOfBoundsError: テーブルやチャンクがバッファ終端を越える場合
    """
    data = path.read_bytes()
    container = detect_container(data)

    package = None
    bank = None
    if container is ContainerType.PACKAGE:
        package = package_summary(decode_package(data))
    elif container.is_obfuscated:
        package = package_summary(decode_package(decrypt_package_header(data)))
    elif container is ContainerType.BANK:
        bank = summarize_bank(data)

    return ContainerInfo(
        path=path,
        container=container,
        size_bytes=len(data),
        package=package,
        bank=bank,
    )
