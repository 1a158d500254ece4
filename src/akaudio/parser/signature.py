"""コンテナ種別判定モジュール

バイト列の先頭4バイトからコンテナ種別を判定する。
判定は副作用を持たず、カーソルを消費しない。
"""

from __future__ import annotations

import struct
from enum import Enum

# 先頭4バイトをビッグエンディアンで読んだ値
AKPK_MAGIC = 0x414B504B
BKHD_MAGIC = 0x424B4844
RIFF_MAGIC = 0x52494646
OBFUSCATED_MAGIC_A = 0x4478293A
OBFUSCATED_MAGIC_B = 0x3A928744


class ContainerType(Enum):
    """判定可能なコンテナ種別

    難読化パッケージは2種類のシグネチャが存在する。
    同一形式かどうかは確定していないため、別々の種別として扱う。
    """

    PACKAGE = "package"
    BANK = "bank"
    WEM = "wem"
    OBFUSCATED_A = "obfuscated_a"
    OBFUSCATED_B = "obfuscated_b"
    OPAQUE = "opaque"

    @property
    def is_obfuscated(self) -> bool:
        """難読化パッケージかどうか"""
        return self in (ContainerType.OBFUSCATED_A, ContainerType.OBFUSCATED_B)


_MAGIC_TABLE: dict[int, ContainerType] = {
    AKPK_MAGIC: ContainerType.PACKAGE,
    BKHD_MAGIC: ContainerType.BANK,
    RIFF_MAGIC: ContainerType.WEM,
    OBFUSCATED_MAGIC_A: ContainerType.OBFUSCATED_A,
    OBFUSCATED_MAGIC_B: ContainerType.OBFUSCATED_B,
}

_EXTENSIONS: dict[ContainerType, str] = {
    ContainerType.PACKAGE: ".pck",
    ContainerType.BANK: ".bnk",
    ContainerType.WEM: ".wem",
    ContainerType.OBFUSCATED_A: ".chk",
    ContainerType.OBFUSCATED_B: ".chk",
    ContainerType.OPAQUE: ".bin",
}


def read_signature(data: bytes | bytearray | memoryview) -> int | None:
    """先頭4バイトをビッグエンディアンで読み取る

    Args:
        data: 判定対象のバイト列

    Returns:
        シグネチャ値。4バイト未満の場合はNone
    """
    if len(data) < 4:
        return None
    return int(struct.unpack_from(">I", data, 0)[0])


def detect_container(data: bytes | bytearray | memoryview) -> ContainerType:
    """バイト列のコンテナ種別を判定する

    Args:
        data: 判定対象のバイト列

    Returns:
        判定されたコンテナ種別。不明な場合は OPAQUE
    """
    signature = read_signature(data)
    if signature is None:
        return ContainerType.OPAQUE
    return _MAGIC_TABLE.get(signature, ContainerType.OPAQUE)


def extension_for(container: ContainerType) -> str:
    """コンテナ種別に対応する拡張子を返す"""
    return _EXTENSIONS[container]


def sniff_extension(data: bytes | bytearray | memoryview) -> str:
    """バイト列から出力用の拡張子を推定する

    Args:
        data: 判定対象のバイト列

    Returns:
        ドット付きの拡張子（不明な場合は ".bin"）
    """
    return extension_for(detect_container(data))
