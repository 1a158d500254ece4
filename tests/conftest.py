"""共通フィクスチャ"""

from pathlib import Path

import pytest


@pytest.fixture(autouse=True)
def isolated_cache_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """キャッシュディレクトリをテストごとの一時ディレクトリに向ける"""
    cache_home = tmp_path / "xdg-cache"
    monkeypatch.setattr("akaudio.cache.platform.system", lambda: "Linux")
    monkeypatch.setenv("XDG_CACHE_HOME", str(cache_home))
    return cache_home / "akaudio"
