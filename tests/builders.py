"""テスト用のバイナリビルダー

.bnk / .pck / .chk のバイト列を組み立てる。
"""

from __future__ import annotations

import struct

from akaudio.parser.cipher import HEADER_CIPHER_OFFSET, xor_blocks
from akaudio.parser.signature import OBFUSCATED_MAGIC_A


def make_wem(body: bytes = b"\x00" * 8) -> bytes:
    """RIFFで始まる最小の .wem バイト列を作る"""
    return b"RIFF" + struct.pack("<I", len(body) + 4) + b"WAVE" + body


def pack_chunk(signature: bytes, payload: bytes) -> bytes:
    """シグネチャ + サイズ + ペイロード"""
    return signature + struct.pack("<I", len(payload)) + payload


def pack_bank_header(
    bank_id: int = 0x1234,
    version: int = 0x8C,
    language_id: int = 0,
    project_id: int = 0,
) -> bytes:
    body = struct.pack("<IIIHHI", version, bank_id, language_id, 0, 0, project_id)
    return pack_chunk(b"BKHD", body)


def pack_media_chunks(assets: list[tuple[int, bytes]]) -> bytes:
    """DIDX + DATA チャンクを組み立てる"""
    index = b""
    data = b""
    for asset_id, payload in assets:
        index += struct.pack("<III", asset_id, len(data), len(payload))
        data += payload
    return pack_chunk(b"DIDX", index) + pack_chunk(b"DATA", data)


def build_bank(
    assets: list[tuple[int, bytes]] | None = None,
    bank_id: int = 0x1234,
    extra_chunks: list[bytes] | None = None,
) -> bytes:
    """BKHD + 追加チャンク + DIDX/DATA の .bnk を組み立てる"""
    chunks = b"".join(extra_chunks or [])
    media = pack_media_chunks(assets) if assets else b""
    return pack_bank_header(bank_id=bank_id) + chunks + media


def pack_language_map(languages: dict[int, str], wide: bool = False) -> bytes:
    count = len(languages)
    strings_start = 4 + 8 * count
    pairs = b""
    strings = b""
    for language_id, name in languages.items():
        pairs += struct.pack("<II", strings_start + len(strings), language_id)
        if wide:
            strings += name.encode("utf-16-le") + b"\x00\x00"
        else:
            strings += name.encode("ascii") + b"\x00"
    raw = struct.pack("<I", count) + pairs + strings
    return raw + b"\x00" * (-len(raw) % 4)


def pack_file_table(rows: list[tuple[int, int, int, int, int]], wide: bool = False) -> bytes:
    """(id, block_size, file_size, block_index, language_id) のテーブルを組み立てる"""
    id_format = "<Q" if wide else "<I"
    raw = struct.pack("<I", len(rows))
    for asset_id, block_size, file_size, block_index, language_id in rows:
        raw += struct.pack(id_format, asset_id)
        raw += struct.pack("<IIII", block_size, file_size, block_index, language_id)
    return raw


def pack_package(
    languages: dict[int, str],
    banks: list[tuple[int, int, int, int, int]] | None = None,
    streams: list[tuple[int, int, int, int, int]] | None = None,
    externals: list[tuple[int, int, int, int, int]] | None = None,
    body: bytes = b"",
    version: int = 1,
    legacy: bool = False,
    wide_language: bool = False,
) -> bytes:
    """テーブル行を直接指定して .pck を組み立てる

    legacy=True の場合は外部ファイルテーブルを持たない旧形式のヘッダーになる。
    """
    lang = pack_language_map(languages, wide=wide_language)
    bank_table = pack_file_table(banks or [])
    stream_table = pack_file_table(streams or [])
    sizes = [len(lang), len(bank_table), len(stream_table)]
    tables = lang + bank_table + stream_table
    if not legacy:
        external_table = pack_file_table(externals or [], wide=True)
        sizes.append(len(external_table))
        tables += external_table

    fields = struct.pack(f"<I{len(sizes)}I", version, *sizes)
    header_size = len(fields) + len(tables)
    return b"AKPK" + struct.pack("<I", header_size) + fields + tables + body


def package_header_length(
    languages: dict[int, str],
    bank_count: int,
    stream_count: int,
    external_count: int,
    legacy: bool = False,
) -> int:
    """pack_package が作るヘッダーのバイト数"""
    length = 8 + 4 + 4 * (3 if legacy else 4)
    length += len(pack_language_map(languages))
    length += 4 + 20 * bank_count + 4 + 20 * stream_count
    if not legacy:
        length += 4 + 24 * external_count
    return length


def build_package(
    languages: dict[int, str],
    banks: list[tuple[int, bytes, int]] | None = None,
    streams: list[tuple[int, bytes, int]] | None = None,
    externals: list[tuple[int, bytes, int]] | None = None,
    block_size: int = 16,
    legacy: bool = False,
) -> bytes:
    """(id, ペイロード, 言語ID) の一覧から .pck を組み立てる

    ペイロードはヘッダーの後ろにブロック境界で揃えて配置する。
    """
    banks = banks or []
    streams = streams or []
    externals = [] if legacy else (externals or [])
    header_length = package_header_length(
        languages, len(banks), len(streams), len(externals), legacy=legacy
    )

    position = header_length + (-header_length % block_size)
    body = b"\x00" * (position - header_length)
    tables: list[list[tuple[int, int, int, int, int]]] = [[], [], []]
    for table, entries in zip(tables, (banks, streams, externals), strict=True):
        for asset_id, payload, language_id in entries:
            table.append((asset_id, block_size, len(payload), position // block_size, language_id))
            padded = payload + b"\x00" * (-len(payload) % block_size)
            body += padded
            position += len(padded)

    return pack_package(
        languages,
        banks=tables[0],
        streams=tables[1],
        externals=tables[2],
        body=body,
        legacy=legacy,
    )


def obfuscate_package(package: bytes, magic: int = OBFUSCATED_MAGIC_A) -> bytes:
    """AKPKのヘッダーを暗号化して .chk のバイト列にする"""
    buffer = bytearray(package)
    (header_size,) = struct.unpack_from("<I", buffer, 4)
    end = HEADER_CIPHER_OFFSET + header_size - 4
    buffer[HEADER_CIPHER_OFFSET:end] = xor_blocks(buffer[HEADER_CIPHER_OFFSET:end], header_size)
    struct.pack_into(">I", buffer, 0, magic)
    struct.pack_into("<I", buffer, 8, 0xDEADBEEF)
    return bytes(buffer)
