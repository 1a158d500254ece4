"""バイト列カーソルモジュール

メモリ上のバイト列に対する位置付き読み取りを提供する。
Wwiseのコンテナはすべてリトルエンディアンで記録されているため、
数値の読み取りはリトルエンディアン固定で行う。
"""

from __future__ import annotations

import struct

from akaudio.errors import OutOfBoundsError

_U16 = struct.Struct("<H")
_U32 = struct.Struct("<I")
_I32 = struct.Struct("<i")
_U64 = struct.Struct("<Q")
_F32 = struct.Struct("<f")


class ByteCursor:
    """シーク可能なバイト列リーダー

    残りバイト数が不足する読み取りはすべて OutOfBoundsError を送出する。

    使用例:
        >>> cursor = ByteCursor(b"AKPK\\x10\\x00\\x00\\x00")
        >>> cursor.peek_u32()
        1263553345
        >>> cursor.read_bytes(4)
        b'AKPK'
        >>> cursor.read_u32()
        16
    """

    def __init__(self, data: bytes | bytearray | memoryview, position: int = 0) -> None:
        """バッファと開始位置を指定して初期化する

        Args:
            data: 読み取り対象のバイト列
            position: 開始位置

        Raises:
            OutOfBoundsError: 開始位置がバッファ範囲外の場合
        """
        self._data = memoryview(data).cast("B")
        self._position = 0
        self.seek_to(position)

    @property
    def position(self) -> int:
        """現在位置"""
        return self._position

    @property
    def size(self) -> int:
        """バッファ全体のバイト数"""
        return len(self._data)

    @property
    def remaining(self) -> int:
        """現在位置から終端までのバイト数"""
        return len(self._data) - self._position

    def _take(self, count: int) -> memoryview:
        if count < 0 or count > self.remaining:
            raise OutOfBoundsError(self._position, count, self.remaining)
        start = self._position
        self._position += count
        return self._data[start : self._position]

    def _unpack(self, fmt: struct.Struct) -> int | float:
        return fmt.unpack(self._take(fmt.size))[0]

    def read_u8(self) -> int:
        """符号なし8bit整数を読み取る"""
        return self._take(1)[0]

    def read_bool(self) -> bool:
        """1バイトの真偽値を読み取る"""
        return self.read_u8() != 0

    def read_u16(self) -> int:
        """符号なし16bit整数を読み取る"""
        return int(self._unpack(_U16))

    def read_u32(self) -> int:
        """符号なし32bit整数を読み取る"""
        return int(self._unpack(_U32))

    def read_i32(self) -> int:
        """符号付き32bit整数を読み取る"""
        return int(self._unpack(_I32))

    def read_u64(self) -> int:
        """符号なし64bit整数を読み取る"""
        return int(self._unpack(_U64))

    def read_f32(self) -> float:
        """32bit浮動小数点数を読み取る"""
        return float(self._unpack(_F32))

    def read_bytes(self, count: int) -> bytes:
        """指定バイト数を読み取る

        Args:
            count: 読み取るバイト数

        Returns:
            読み取ったバイト列

        Raises:
            OutOfBoundsError: 残りバイト数が不足する場合
        """
        return bytes(self._take(count))

    def peek_bytes(self, count: int) -> bytes:
        """位置を進めずに指定バイト数を読み取る"""
        start = self._position
        try:
            return self.read_bytes(count)
        finally:
            self._position = start

    def peek_u32(self) -> int:
        """位置を進めずに符号なし32bit整数を読み取る"""
        start = self._position
        try:
            return self.read_u32()
        finally:
            self._position = start

    def seek_to(self, position: int) -> None:
        """指定位置へ移動する

        終端位置（size）への移動は許可する。

        Args:
            position: 移動先の絶対位置

        Raises:
            OutOfBoundsError: 移動先がバッファ範囲外の場合
        """
        if position < 0 or position > len(self._data):
            raise OutOfBoundsError(position, 0, max(0, len(self._data) - position))
        self._position = position

    def skip(self, count: int) -> None:
        """指定バイト数だけ読み飛ばす"""
        self._take(count)

    def align(self, alignment: int = 4) -> None:
        """現在位置をalignmentの倍数まで進める

        Args:
            alignment: アラインメント（バイト数）
        """
        remainder = self._position % alignment
        if remainder:
            self.seek_to(self._position + alignment - remainder)

    def read_cstring(self, encoding: str = "utf-8") -> str:
        """NULL終端の1バイト文字列を読み取る

        Raises:
            OutOfBoundsError: 終端のNULLが見つからない場合
        """
        chars = bytearray()
        while (value := self.read_u8()) != 0:
            chars.append(value)
        return chars.decode(encoding, errors="replace")

    def read_wcstring(self) -> str:
        """NULL終端の2バイト文字列（UTF-16LE）を読み取る

        Raises:
            OutOfBoundsError: 終端のNULLが見つからない場合
        """
        chars = bytearray()
        while (value := self.read_u16()) != 0:
            chars += _U16.pack(value)
        return chars.decode("utf-16-le", errors="replace")

    def sub_cursor(self, count: int) -> ByteCursor:
        """指定バイト数を切り出した独立カーソルを返す

        元のカーソルは count バイト進む。

        Args:
            count: 切り出すバイト数

        Returns:
            切り出した範囲のみを読み取る新しいカーソル
        """
        return ByteCursor(self._take(count))
