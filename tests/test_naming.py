"""出力パス解決のテスト"""

from pathlib import Path, PurePosixPath

import pytest

from akaudio.naming import (
    AssetKind,
    AssetRef,
    KnownNames,
    OutputLayout,
    load_tsv,
    resolve_name,
    resolve_relative_path,
)

SOURCE = Path("Audio/Streamed0.pck")


class TestResolveName:
    """ファイル名決定のテスト"""

    @pytest.mark.parametrize(
        "ref, legacy, expected",
        [
            pytest.param(
                AssetRef(AssetKind.STREAM, 0x1234, SOURCE),
                False,
                "00001234",
                id="正常系: ストリームは8桁16進",
            ),
            pytest.param(
                AssetRef(AssetKind.STREAM, 0x1234, SOURCE),
                True,
                "4660",
                id="正常系: 旧命名のストリームは10進",
            ),
            pytest.param(
                AssetRef(AssetKind.BANK_MEDIA, 255, SOURCE),
                False,
                "000000ff",
                id="正常系: バンク内アセットは8桁16進",
            ),
            pytest.param(
                AssetRef(AssetKind.BANK_MEDIA, 255, SOURCE),
                True,
                "255",
                id="正常系: 旧命名のバンク内アセットは10進",
            ),
            pytest.param(
                AssetRef(AssetKind.EXTERNAL, 0xABC, SOURCE),
                False,
                "0000000000000abc",
                id="正常系: 外部ファイルは16桁16進",
            ),
            pytest.param(
                AssetRef(AssetKind.LOOSE, 0, Path("in/voice_01.wem")),
                False,
                "voice_01",
                id="正常系: 単体ファイルは元の名前",
            ),
        ],
    )
    def test_default_names(self, ref: AssetRef, legacy: bool, expected: str) -> None:
        """既知の名前がない場合のファイル名"""
        name, matched = resolve_name(ref, OutputLayout(legacy_names=legacy), KnownNames())

        assert name == expected
        assert matched is False

    def test_external_known_filename(self) -> None:
        """外部ファイルは既知のファイル名に置き換える"""
        known = KnownNames(filenames={"0000000000000abc": "VO\\Chapter1\\line_001.wem"})
        ref = AssetRef(AssetKind.EXTERNAL, 0xABC, SOURCE)

        name, matched = resolve_name(ref, OutputLayout(), known)

        assert name == "VO/Chapter1/line_001"
        assert matched is True

    def test_legacy_bank_media_known_event(self) -> None:
        """旧命名のバンク内アセットは既知のイベント名に置き換える"""
        known = KnownNames(events={"255": "Play_Footstep.wem"})
        ref = AssetRef(AssetKind.BANK_MEDIA, 255, SOURCE)

        assert resolve_name(ref, OutputLayout(legacy_names=True), known) == ("Play_Footstep", True)
        assert resolve_name(ref, OutputLayout(), known) == ("000000ff", False)


class TestResolveRelativePath:
    """相対出力パスのテスト"""

    def test_stream_with_language(self) -> None:
        """言語フォルダ + 16進ID"""
        ref = AssetRef(AssetKind.STREAM, 0x1234, SOURCE, language="sfx", language_count=2)

        assert resolve_relative_path(ref, ".wem", OutputLayout()) == PurePosixPath("sfx/00001234.wem")

    def test_split_output_uses_source_stem(self) -> None:
        """split_output は入力ファイル名のフォルダを先頭に置く"""
        ref = AssetRef(AssetKind.STREAM, 1, SOURCE, language="sfx", language_count=2)

        path = resolve_relative_path(ref, ".wem", OutputLayout(split_output=True))

        assert path == PurePosixPath("Streamed0/sfx/00000001.wem")

    def test_banked_output_for_bank_media(self) -> None:
        """banked_output はバンク内アセットのみバンクIDのフォルダに入れる"""
        layout = OutputLayout(split_output=True, banked_output=True)
        media = AssetRef(AssetKind.BANK_MEDIA, 2, SOURCE, "english(us)", 2, bank_id=100)
        stream = AssetRef(AssetKind.STREAM, 2, SOURCE, "english(us)", 2)

        assert resolve_relative_path(media, ".wem", layout) == PurePosixPath(
            "Streamed0/100/english(us)/00000002.wem"
        )
        assert resolve_relative_path(stream, ".wem", layout) == PurePosixPath(
            "Streamed0/english(us)/00000002.wem"
        )

    @pytest.mark.parametrize(
        "no_lang, language_count, expected",
        [
            pytest.param(False, 1, "sfx/00000001.wem", id="正常系: no_lang無効なら言語フォルダあり"),
            pytest.param(True, 1, "00000001.wem", id="正常系: 言語1つでno_lang有効なら省略"),
            pytest.param(True, 0, "00000001.wem", id="境界値: 言語数0でno_lang有効なら省略"),
            pytest.param(True, 2, "sfx/00000001.wem", id="正常系: 言語2つ以上なら省略しない"),
        ],
    )
    def test_no_lang(self, no_lang: bool, language_count: int, expected: str) -> None:
        """no_lang は言語が1つ以下の場合に言語フォルダを省略する"""
        ref = AssetRef(AssetKind.STREAM, 1, SOURCE, "sfx", language_count)

        path = resolve_relative_path(ref, ".wem", OutputLayout(no_lang=no_lang))

        assert path.as_posix() == expected

    def test_known_name_suppresses_language(self) -> None:
        """既知の名前に一致した場合は言語フォルダを省略する"""
        known = KnownNames(filenames={"0000000000000001": "Music/theme.wem"})
        ref = AssetRef(AssetKind.EXTERNAL, 1, SOURCE, "sfx", 3)

        path = resolve_relative_path(ref, ".wem", OutputLayout(split_output=True), known)

        assert path == PurePosixPath("Streamed0/Music/theme.wem")

    def test_standalone_without_language(self) -> None:
        """言語を持たないアセットは言語フォルダなし"""
        ref = AssetRef(AssetKind.BANK_MEDIA, 16, Path("Init.bnk"), bank_id=7)

        assert resolve_relative_path(ref, ".wem", OutputLayout()) == PurePosixPath("00000010.wem")

    @pytest.mark.parametrize(
        "occurrence, legacy, expected",
        [
            pytest.param(0, False, "00000007.wem", id="正常系: 最初の出現は連番なし"),
            pytest.param(1, False, "00000007_1.wem", id="正常系: 2つ目は_1"),
            pytest.param(2, True, "7_2.wem", id="正常系: 旧命名でも連番を付ける"),
        ],
    )
    def test_duplicate_id_suffix(self, occurrence: int, legacy: bool, expected: str) -> None:
        """同じバンク内で重複するIDは出現順の連番を付ける"""
        ref = AssetRef(AssetKind.BANK_MEDIA, 7, Path("Init.bnk"), bank_id=1, occurrence=occurrence)

        path = resolve_relative_path(ref, ".wem", OutputLayout(legacy_names=legacy))

        assert path == PurePosixPath(expected)

    def test_extension_is_appended(self) -> None:
        """推定した拡張子を付ける"""
        ref = AssetRef(AssetKind.LOOSE, 0, Path("in/blob.dat"))

        assert resolve_relative_path(ref, ".bin", OutputLayout()) == PurePosixPath("blob.bin")


class TestLoadTsv:
    """TSV読み込みのテスト"""

    def test_load_tsv(self, tmp_path: Path) -> None:
        """2列以上の行を読み込み、前後の空白を除く"""
        path = tmp_path / "Known_Filenames.tsv"
        path.write_text(
            "0000000000000001\tMusic/theme.wem\n"
            "broken line\n"
            " 0000000000000002 \t VO/line.wem \textra\n",
            encoding="utf-8",
        )

        table = load_tsv(path)

        assert table == {
            "0000000000000001": "Music/theme.wem",
            "0000000000000002": "VO/line.wem",
        }

    def test_load_tsv_with_bom(self, tmp_path: Path) -> None:
        """BOM付きUTF-8はBOMを除いて読み込む"""
        path = tmp_path / "Known_Events.tsv"
        lines = "".join(f"{number}\tボイス/台詞_{number:03}.wem\n" for number in range(40))
        path.write_bytes(lines.encode("utf-8-sig"))

        table = load_tsv(path)

        assert table["0"] == "ボイス/台詞_000.wem"
        assert table["12"] == "ボイス/台詞_012.wem"

    def test_known_names_load(self, tmp_path: Path) -> None:
        """KnownNames.load は指定されたTSVのみ読み込む"""
        events = tmp_path / "Known_Events.tsv"
        events.write_text("255\tPlay_Footstep.wem\n", encoding="utf-8")

        known = KnownNames.load(None, events)

        assert known.filenames == {}
        assert known.events == {"255": "Play_Footstep.wem"}
