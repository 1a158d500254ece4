"""Cache module for akaudio.

フィンガープリントインデックスを保存するOSごとのキャッシュディレクトリを扱う。
"""

from __future__ import annotations

import os
import platform
import shutil
from dataclasses import dataclass
from pathlib import Path

INDEX_SUFFIX = "-wem_checksums.csv"


@dataclass(frozen=True)
class IndexInfo:
    """インデックス保存先の情報"""

    directory: Path
    size_bytes: int
    index_count: int


def get_cache_dir() -> Path:
    """OSごとのキャッシュディレクトリを取得する"""
    system = platform.system()

    if system == "Linux":
        xdg_cache = os.environ.get("XDG_CACHE_HOME")
        base = Path(xdg_cache) if xdg_cache else Path.home() / ".cache"
    elif system == "Darwin":
        base = Path.home() / "Library" / "Caches"
    elif system == "Windows":
        local_app_data = os.environ.get("LOCALAPPDATA")
        if local_app_data:
            base = Path(local_app_data) / "akaudio"
        else:
            base = Path.home() / "AppData" / "Local" / "akaudio"
        return base / "cache"
    else:
        base = Path.home() / ".cache"

    return base / "akaudio"


def get_index_dir() -> Path:
    """インデックスの保存ディレクトリを取得する"""
    return get_cache_dir() / "index"


def get_index_path(output_dir: Path) -> Path:
    """出力ディレクトリに対応するインデックスファイルのパスを取得する

    Example:
        >>> get_index_path(Path("/data/out")).name
        'out-wem_checksums.csv'
    """
    name = output_dir.resolve().name or "root"
    return get_index_dir() / f"{name}{INDEX_SUFFIX}"


def clear_index() -> None:
    """すべてのインデックスを削除する"""
    index_dir = get_index_dir()
    if index_dir.exists():
        shutil.rmtree(index_dir)


def get_index_info() -> IndexInfo:
    """インデックス保存先の情報を取得する"""
    index_dir = get_index_dir()

    if not index_dir.exists():
        return IndexInfo(directory=index_dir, size_bytes=0, index_count=0)

    files = [f for f in index_dir.glob(f"*{INDEX_SUFFIX}") if f.is_file()]
    return IndexInfo(
        directory=index_dir,
        size_bytes=sum(f.stat().st_size for f in files),
        index_count=len(files),
    )
