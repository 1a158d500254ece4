"""依存ツールチェッカーのテスト"""

import subprocess
from unittest.mock import MagicMock, patch

import pytest

from akaudio.doctor import (
    DEPENDENCIES,
    CheckResult,
    DependencyInfo,
    _extract_version,
    check_all_dependencies,
    check_dependency,
)


class TestCheckResult:
    """CheckResult データクラスのテスト"""

    def test_check_result_is_frozen(self) -> None:
        """CheckResultは変更不可"""
        result = CheckResult(name="FFmpeg", required=False, found=True, version="6.1", message=None)
        with pytest.raises(AttributeError):
            result.found = False  # type: ignore[misc]


class TestExtractVersion:
    """バージョン抽出のテスト"""

    @pytest.mark.parametrize(
        "output, expected",
        [
            pytest.param("Python 3.12.1", "3.12.1", id="正常系: Python"),
            pytest.param("ffmpeg version 6.1 Copyright", "6.1", id="正常系: FFmpeg"),
            pytest.param("vgmstream CLI decoder r1917", "1917", id="正常系: vgmstreamのリビジョン"),
            pytest.param("no digits here", None, id="正常系: バージョンなし"),
        ],
    )
    def test_extract_version(self, output: str, expected: str | None) -> None:
        """コマンド出力からバージョン番号を取り出す"""
        assert _extract_version(output) == expected


class TestCheckDependency:
    """check_dependencyのテスト"""

    def test_found(self) -> None:
        """コマンドが起動できれば見つかった扱い"""
        completed = MagicMock(stdout="ffmpeg version 6.1", stderr="")
        info = DependencyInfo(name="FFmpeg", command="ffmpeg", version_flag="-version", required=False)

        with patch("subprocess.run", return_value=completed) as mock_run:
            result = check_dependency(info)

        assert result.found
        assert result.version == "6.1"
        assert mock_run.call_args.args[0] == ["ffmpeg", "-version"]

    def test_without_version_flag(self) -> None:
        """version_flagがNoneの場合は引数なしで起動する"""
        completed = MagicMock(stdout="", stderr="vgmstream CLI decoder r1917", returncode=1)
        info = DependencyInfo(
            name="vgmstream-cli", command="vgmstream-cli", version_flag=None, required=False
        )

        with patch("subprocess.run", return_value=completed) as mock_run:
            result = check_dependency(info)

        assert result.found
        assert mock_run.call_args.args[0] == ["vgmstream-cli"]

    @pytest.mark.parametrize(
        "side_effect, message",
        [
            pytest.param(FileNotFoundError, "見つかりません", id="異常系: コマンドなし"),
            pytest.param(
                subprocess.TimeoutExpired(cmd="ffmpeg", timeout=10), "タイムアウト", id="異常系: タイムアウト"
            ),
            pytest.param(PermissionError("denied"), "実行エラー", id="異常系: 実行権限なし"),
        ],
    )
    def test_not_found(self, side_effect: BaseException | type[BaseException], message: str) -> None:
        """起動できない場合は見つからない扱い"""
        info = DependencyInfo(name="FFmpeg", command="ffmpeg", version_flag="-version", required=True)

        with patch("subprocess.run", side_effect=side_effect):
            result = check_dependency(info)

        assert not result.found
        assert result.required
        assert result.message is not None and message in result.message


class TestCheckAllDependencies:
    """check_all_dependenciesのテスト"""

    def test_checks_every_dependency(self) -> None:
        """すべての依存ツールをチェックする"""
        completed = MagicMock(stdout="1.0.0", stderr="")
        with patch("subprocess.run", return_value=completed):
            results = check_all_dependencies()

        assert [result.name for result in results] == [info.name for info in DEPENDENCIES]

    def test_transcoders_optional_by_default(self) -> None:
        """変換ツールはデフォルトではオプション"""
        with patch("subprocess.run", side_effect=FileNotFoundError):
            results = {result.name: result for result in check_all_dependencies()}

        assert results["Python"].required
        assert not results["vgmstream-cli"].required
        assert not results["FFmpeg"].required

    def test_require_transcoders(self) -> None:
        """require_transcoders=True で変換ツールを必須にする"""
        with patch("subprocess.run", side_effect=FileNotFoundError):
            results = {
                result.name: result for result in check_all_dependencies(require_transcoders=True)
            }

        assert results["vgmstream-cli"].required
        assert results["FFmpeg"].required

    def test_custom_commands(self) -> None:
        """実行ファイルを差し替えられる"""
        completed = MagicMock(stdout="", stderr="")
        with patch("subprocess.run", return_value=completed) as mock_run:
            check_all_dependencies(vgmstream="/opt/vgm", ffmpeg="/opt/ffmpeg")

        commands = [call.args[0][0] for call in mock_run.call_args_list]
        assert "/opt/vgm" in commands
        assert "/opt/ffmpeg" in commands
