"""難読化パッケージ復号のテスト"""

import struct

import pytest
from builders import build_package, make_wem, obfuscate_package

from akaudio.errors import CipherMismatchError, OutOfBoundsError
from akaudio.parser.cipher import (
    decrypt,
    decrypt_asset,
    decrypt_package_header,
    derive_key,
    encrypt,
    xor_blocks,
)
from akaudio.parser.package import decode_package
from akaudio.parser.signature import (
    OBFUSCATED_MAGIC_A,
    OBFUSCATED_MAGIC_B,
    ContainerType,
    detect_container,
)


class TestDeriveKey:
    """derive_keyのテスト"""

    def test_key_is_32bit(self) -> None:
        """鍵は32bitに収まる"""
        for seed in (0, 1, 0xFF, 0x12345678, 0xFFFFFFFF):
            assert 0 <= derive_key(seed) <= 0xFFFFFFFF

    def test_key_depends_on_every_seed_byte(self) -> None:
        """シードのどのバイトが変わっても鍵が変わる"""
        base = derive_key(0)
        for shift in (0, 8, 16, 24):
            assert derive_key(1 << shift) != base

    def test_key_is_deterministic(self) -> None:
        """同じシードからは同じ鍵"""
        assert derive_key(0xABCDEF) == derive_key(0xABCDEF)


class TestXorBlocks:
    """キーストリームXORのテスト"""

    @pytest.mark.parametrize(
        "length",
        [
            pytest.param(0, id="境界値: 0バイト"),
            pytest.param(1, id="境界値: 1バイト"),
            pytest.param(3, id="境界値: 3バイト"),
            pytest.param(4, id="境界値: 4バイト"),
            pytest.param(9, id="正常系: 4k+1バイト"),
            pytest.param(14, id="正常系: 4k+2バイト"),
            pytest.param(64, id="正常系: 4の倍数"),
        ],
    )
    def test_encrypt_then_decrypt_restores_input(self, length: int) -> None:
        """暗号化と復号は対合"""
        data = bytes((index * 37) & 0xFF for index in range(length))

        encrypted = encrypt(data, 0x1234)

        assert len(encrypted) == length
        assert decrypt(encrypted, 0x1234) == data

    def test_first_word_uses_seed_key(self) -> None:
        """最初のワードはシードの鍵、次のワードはシード+1の鍵とXORする"""
        result = xor_blocks(b"\x00" * 8, 5)

        assert struct.unpack("<II", result) == (derive_key(5), derive_key(6))

    def test_tail_bytes_use_low_bytes_of_next_key(self) -> None:
        """端数バイトは次の鍵の下位バイトとXORする"""
        result = xor_blocks(b"\x00" * 6, 0)

        assert result[4:] == struct.pack("<I", derive_key(1))[:2]

    def test_different_seed_changes_output(self) -> None:
        """シードが異なれば結果も異なる"""
        data = b"\x00" * 16
        assert xor_blocks(data, 1) != xor_blocks(data, 2)


class TestDecryptPackageHeader:
    """decrypt_package_headerのテスト"""

    @pytest.mark.parametrize(
        "magic",
        [
            pytest.param(OBFUSCATED_MAGIC_A, id="正常系: 難読化A"),
            pytest.param(OBFUSCATED_MAGIC_B, id="正常系: 難読化B"),
        ],
    )
    def test_decrypted_header_is_parseable(self, magic: int) -> None:
        """復号したヘッダーはAKPKとして解析できる"""
        stream = make_wem(b"stream body")
        original = build_package({0: "sfx"}, streams=[(42, stream, 0)])
        obfuscated = obfuscate_package(original, magic)
        assert detect_container(obfuscated).is_obfuscated

        decrypted = decrypt_package_header(obfuscated)

        assert decrypted == original
        package = decode_package(decrypted)
        assert package.languages.names == {0: "sfx"}
        assert package.get_bytes(package.streams.entries[0]) == stream

    def test_signature_and_version_are_patched(self) -> None:
        """シグネチャはAKPK、オフセット8の値は1に書き換えられる"""
        obfuscated = obfuscate_package(build_package({0: "sfx"}))

        decrypted = decrypt_package_header(obfuscated)

        assert decrypted[:4] == b"AKPK"
        assert struct.unpack_from("<I", decrypted, 8)[0] == 1
        assert detect_container(decrypted) is ContainerType.PACKAGE

    def test_payload_after_header_is_untouched(self) -> None:
        """ヘッダーより後ろのバイトは変更しない"""
        original = build_package({0: "sfx"}, streams=[(1, make_wem(b"abc"), 0)])
        obfuscated = obfuscate_package(original)
        (header_size,) = struct.unpack_from("<I", original, 4)

        decrypted = decrypt_package_header(obfuscated)

        assert decrypted[8 + header_size :] == obfuscated[8 + header_size :]

    @pytest.mark.parametrize(
        "data",
        [
            pytest.param(b"\x44\x78\x29\x3a", id="異常系: 12バイト未満"),
            pytest.param(
                b"\x44\x78\x29\x3a" + struct.pack("<I", 1000) + b"\x00" * 16,
                id="異常系: ヘッダーサイズがバッファを越える",
            ),
        ],
    )
    def test_truncated_header_raises(self, data: bytes) -> None:
        """ヘッダーが足りない場合はOutOfBoundsError"""
        with pytest.raises(OutOfBoundsError):
            decrypt_package_header(data)


class TestDecryptAsset:
    """decrypt_assetのテスト"""

    def test_recognized_result_is_returned(self) -> None:
        """復号結果が既知のコンテナであれば返す"""
        asset = make_wem(b"payload")
        encrypted = encrypt(asset, 0x0BADF00D)

        assert decrypt_asset(encrypted, 0x0BADF00D, verify=True) == asset

    def test_seed_is_low_32_bits_of_id(self) -> None:
        """シードはアセットIDの下位32bit"""
        asset = make_wem(b"wide id")
        encrypted = encrypt(asset, 0x55667788)

        assert decrypt_asset(encrypted, 0x1122334455667788) == asset

    def test_unrecognized_result_raises_when_verified(self) -> None:
        """verify=Trueで認識できない結果はCipherMismatchError"""
        with pytest.raises(CipherMismatchError) as exc_info:
            decrypt_asset(b"\x00" * 16, 77, verify=True)

        assert exc_info.value.asset_id == 77

    def test_unverified_result_is_returned_as_is(self) -> None:
        """verify=Falseでは認識できなくても返す"""
        result = decrypt_asset(b"\x00" * 16, 77)

        assert result == xor_blocks(b"\x00" * 16, 77)
