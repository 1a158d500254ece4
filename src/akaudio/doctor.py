"""依存ツールチェッカー"""

from __future__ import annotations

import re
import subprocess
from dataclasses import dataclass, replace


@dataclass(frozen=True)
class CheckResult:
    """チェック結果"""

    name: str
    required: bool
    found: bool
    version: str | None
    message: str | None


@dataclass(frozen=True)
class DependencyInfo:
    """依存ツール情報

    version_flag が None の場合は引数なしで起動し、終了コードに関係なく
    起動できたかどうかで存在を判定する。
    """

    name: str
    command: str
    version_flag: str | None
    required: bool
    min_version: str | None = None


DEPENDENCIES: list[DependencyInfo] = [
    DependencyInfo(
        name="Python",
        command="python",
        version_flag="--version",
        required=True,
        min_version="3.12",
    ),
    DependencyInfo(
        name="vgmstream-cli",
        command="vgmstream-cli",
        version_flag=None,
        required=False,
    ),
    DependencyInfo(
        name="FFmpeg",
        command="ffmpeg",
        version_flag="-version",
        required=False,
    ),
]


def _extract_version(output: str) -> str | None:
    """コマンド出力からバージョン番号を抽出する"""
    patterns = [
        r"(\d+\.\d+\.\d+)",
        r"(\d+\.\d+)",
        r"version\s+(\d+)",
        r"r(\d+)",
    ]
    for pattern in patterns:
        match = re.search(pattern, output, re.IGNORECASE)
        if match:
            return match.group(1)
    return None


def check_dependency(info: DependencyInfo) -> CheckResult:
    """単一の依存ツールをチェックする"""
    command = [info.command] if info.version_flag is None else [info.command, info.version_flag]
    try:
        result = subprocess.run(
            command,
            capture_output=True,
            text=True,
            timeout=10,
        )
        output = result.stdout + result.stderr
        version = _extract_version(output)

        return CheckResult(
            name=info.name,
            required=info.required,
            found=True,
            version=version,
            message=None,
        )
    except FileNotFoundError:
        return CheckResult(
            name=info.name,
            required=info.required,
            found=False,
            version=None,
            message=f"コマンド '{info.command}' が見つかりません",
        )
    except subprocess.TimeoutExpired:
        return CheckResult(
            name=info.name,
            required=info.required,
            found=False,
            version=None,
            message=f"コマンド '{info.command}' がタイムアウトしました",
        )
    except OSError as e:
        return CheckResult(
            name=info.name,
            required=info.required,
            found=False,
            version=None,
            message=f"コマンド実行エラー: {e}",
        )


def check_all_dependencies(
    vgmstream: str = "vgmstream-cli",
    ffmpeg: str = "ffmpeg",
    require_transcoders: bool = False,
) -> list[CheckResult]:
    """全ての依存ツールをチェックする

    Args:
        vgmstream: vgmstream-cli の実行ファイル
        ffmpeg: ffmpeg の実行ファイル
        require_transcoders: 変換ツールを必須として扱うか（--wav / --ogg 使用時）
    """
    commands = {"vgmstream-cli": vgmstream, "FFmpeg": ffmpeg}
    results: list[CheckResult] = []
    for info in DEPENDENCIES:
        if info.name in commands:
            info = replace(
                info,
                command=commands[info.name],
                required=info.required or require_transcoders,
            )
        results.append(check_dependency(info))
    return results
