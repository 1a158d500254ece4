"""WavToOggConverterのテスト"""

import subprocess
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from akaudio.converter import ConversionStatus, WavToOggConverter


@pytest.fixture
def wav_file(tmp_path: Path) -> Path:
    """変換元の .wav ファイル"""
    path = tmp_path / "voice.wav"
    path.write_bytes(b"RIFF\x04\x00\x00\x00WAVE")
    return path


class TestWavToOggConverter:
    """WavToOggConverterのテスト"""

    def test_extensions(self) -> None:
        """対応拡張子と出力拡張子"""
        converter = WavToOggConverter()

        assert converter.supported_extensions == (".wav",)
        assert converter.output_extension == ".ogg"

    def test_build_stream_arguments(self, tmp_path: Path) -> None:
        """libvorbis の品質10でエンコードする引数を組み立てる"""
        converter = WavToOggConverter()

        args = converter.build_stream(tmp_path / "a.wav", tmp_path / "a.ogg").get_args()

        assert args[args.index("-i") + 1] == str(tmp_path / "a.wav")
        assert args[args.index("-acodec") + 1] == "libvorbis"
        assert args[args.index("-qscale:a") + 1] == "10"
        assert "-y" in args
        assert str(tmp_path / "a.ogg") in args

    def test_convert_success(self, wav_file: Path, tmp_path: Path) -> None:
        """正常終了した場合は成功"""
        dest = tmp_path / "ogg" / "voice.ogg"
        process = MagicMock()
        process.communicate.return_value = (b"", b"")
        process.returncode = 0
        converter = WavToOggConverter(executable="/opt/ffmpeg")

        with patch("subprocess.Popen", return_value=process) as mock_popen:
            result = converter.convert(wav_file, dest)

        assert result.status is ConversionStatus.SUCCESS
        assert result.dest_path == dest
        assert mock_popen.call_args.args[0][0] == "/opt/ffmpeg"

    def test_convert_nonzero_exit(self, wav_file: Path, tmp_path: Path) -> None:
        """異常終了した場合は標準エラー出力の最終行を含む失敗"""
        process = MagicMock()
        process.communicate.return_value = (b"", b"header\nUnknown encoder 'libvorbis'\n")
        process.returncode = 1
        converter = WavToOggConverter()

        with patch("subprocess.Popen", return_value=process):
            result = converter.convert(wav_file, tmp_path / "voice.ogg")

        assert result.status is ConversionStatus.FAILED
        assert "Unknown encoder" in result.message
        assert "header" not in result.message

    def test_convert_tool_not_found(self, wav_file: Path, tmp_path: Path) -> None:
        """FFmpegが見つからない場合は失敗"""
        converter = WavToOggConverter()

        with patch("subprocess.Popen", side_effect=FileNotFoundError):
            result = converter.convert(wav_file, tmp_path / "voice.ogg")

        assert result.status is ConversionStatus.FAILED
        assert "FFmpeg" in result.message

    def test_convert_timeout(self, wav_file: Path, tmp_path: Path) -> None:
        """タイムアウトした場合は失敗"""
        process = MagicMock()
        process.communicate.side_effect = [
            subprocess.TimeoutExpired(cmd="ffmpeg", timeout=1),
            (b"", b""),
        ]
        converter = WavToOggConverter(timeout=1)

        with patch("subprocess.Popen", return_value=process):
            result = converter.convert(wav_file, tmp_path / "voice.ogg")

        assert result.status is ConversionStatus.FAILED
        assert "タイムアウト" in result.message

    @pytest.mark.parametrize(
        "side_effect,expected",
        [
            pytest.param(None, True, id="正常系: FFmpeg利用可能"),
            pytest.param(FileNotFoundError, False, id="異常系: FFmpegが見つからない"),
            pytest.param(
                subprocess.CalledProcessError(1, "ffmpeg"), False, id="異常系: FFmpegが異常終了"
            ),
        ],
    )
    def test_is_available(self, side_effect: type[Exception] | Exception | None, expected: bool) -> None:
        """FFmpegの利用可否を確認する"""
        with patch("subprocess.run", side_effect=side_effect):
            assert WavToOggConverter().is_available() is expected
