"""難読化パッケージ(.chk)の復号モジュール

32bitワード単位の鍵付きXORストリーム暗号を実装する。
暗号化と復号は同じ操作（対合）になる。

ヘッダーの復号は確実に機能するが、アセット単位の復号は
正しいシード導出が判明していないためベストエフォートとして扱う。
"""

from __future__ import annotations

import struct

from akaudio.errors import CipherMismatchError, OutOfBoundsError
from akaudio.parser.signature import ContainerType, detect_container

KEY_INITIAL = 0x9C5A0B29
KEY_MULTIPLIER = 81861667

_MASK32 = 0xFFFFFFFF

# 復号開始位置: シグネチャ(4) + ヘッダーサイズ(4) + バージョン(4)
HEADER_CIPHER_OFFSET = 12


def derive_key(seed: int) -> int:
    """シードから32bit鍵を導出する

    シードの各バイトを下位から順にXORしながら乗算を連鎖させる。

    Args:
        seed: 32bitシード

    Returns:
        32bit鍵
    """
    key = KEY_INITIAL
    for shift in (0, 8, 16, 24):
        key = ((key ^ ((seed >> shift) & 0xFF)) * KEY_MULTIPLIER) & _MASK32
    return key


def xor_blocks(data: bytes | bytearray | memoryview, seed: int) -> bytes:
    """バッファ全体にキーストリームをXORする

    4バイトのリトルエンディアンワードごとに derive_key(counter) をXORし、
    counter はシードから1ずつ増える。端数の1〜3バイトは次の鍵の下位バイトとXORする。

    Args:
        data: 対象のバイト列
        seed: 最初のワードに使うシード

    Returns:
        XOR後のバイト列（入力と同じ長さ）
    """
    buffer = bytes(data)
    length = len(buffer)
    block_count = (length + 3) // 4
    keys = [derive_key((seed + index) & _MASK32) for index in range(block_count)]
    stream = struct.pack(f"<{block_count}I", *keys)[:length]
    mixed = int.from_bytes(buffer, "little") ^ int.from_bytes(stream, "little")
    return mixed.to_bytes(length, "little")


def encrypt(data: bytes | bytearray | memoryview, seed: int) -> bytes:
    """暗号化する（xor_blocks と同じ）"""
    return xor_blocks(data, seed)


def decrypt(data: bytes | bytearray | memoryview, seed: int) -> bytes:
    """復号する（xor_blocks と同じ）"""
    return xor_blocks(data, seed)


def decrypt_package_header(data: bytes | bytearray | memoryview) -> bytes:
    """難読化パッケージのヘッダーを復号する

    オフセット4のヘッダーサイズをシードとして、オフセット12から
    ヘッダーサイズ - 4 バイトを復号する。
    その後シグネチャを AKPK に、オフセット8の値を1に書き換える。

    Args:
        data: .chk ファイル全体のバイト列

    Returns:
        AKPKとして解析可能なバッファ全体

    Raises:
        OutOfBoundsError: ヘッダーがバッファ終端を越える場合
    """
    buffer = bytearray(data)
    if len(buffer) < HEADER_CIPHER_OFFSET:
        raise OutOfBoundsError(0, HEADER_CIPHER_OFFSET, len(buffer))

    (header_size,) = struct.unpack_from("<I", buffer, 4)
    end = HEADER_CIPHER_OFFSET + header_size - 4
    if header_size < 4 or end > len(buffer):
        raise OutOfBoundsError(HEADER_CIPHER_OFFSET, header_size - 4, len(buffer) - HEADER_CIPHER_OFFSET)

    buffer[HEADER_CIPHER_OFFSET:end] = xor_blocks(buffer[HEADER_CIPHER_OFFSET:end], header_size)
    buffer[0:4] = b"AKPK"
    struct.pack_into("<I", buffer, 8, 1)
    return bytes(buffer)


def decrypt_asset(
    data: bytes | bytearray | memoryview, asset_id: int, *, verify: bool = False
) -> bytes:
    """アセットを復号する

    シードはアセットIDの下位32bit。

    Args:
        data: アセットのバイト列
        asset_id: アセットID
        verify: Trueの場合、復号結果が既知のコンテナでなければ例外を送出する

    Returns:
        復号したバイト列

    Raises:
        CipherMismatchError: verify=True で復号結果を認識できない場合
    """
    decrypted = xor_blocks(data, asset_id & _MASK32)
    if verify and detect_container(decrypted) is ContainerType.OPAQUE:
        raise CipherMismatchError(asset_id)
    return decrypted
