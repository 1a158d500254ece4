"""外部プロセス管理モジュール

実行中の変換ツールのプロセスを登録し、キャンセル時にまとめて終了させる。
"""

from __future__ import annotations

import subprocess
import threading
from typing import Protocol


class ManagedProcess(Protocol):
    """終了可能なプロセス"""

    def poll(self) -> int | None: ...

    def terminate(self) -> None: ...


class ProcessRegistry:
    """実行中プロセスのレジストリ

    terminate_all() 以降に登録されたプロセスは即座に終了させる。
    """

    def __init__(self) -> None:
        self._processes: set[ManagedProcess] = set()
        self._lock = threading.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        """terminate_all() が呼ばれたかどうか"""
        return self._closed

    def __len__(self) -> int:
        with self._lock:
            return len(self._processes)

    def register(self, process: ManagedProcess) -> None:
        """プロセスを登録する"""
        with self._lock:
            if not self._closed:
                self._processes.add(process)
                return
        _terminate(process)

    def unregister(self, process: ManagedProcess) -> None:
        """プロセスの登録を解除する"""
        with self._lock:
            self._processes.discard(process)

    def terminate_all(self) -> int:
        """登録中のすべてのプロセスを終了させる

        Returns:
            終了を要求したプロセス数
        """
        with self._lock:
            self._closed = True
            processes = list(self._processes)
            self._processes.clear()

        for process in processes:
            _terminate(process)
        return len(processes)


def _terminate(process: ManagedProcess) -> None:
    if process.poll() is not None:
        return
    try:
        process.terminate()
    except (ProcessLookupError, OSError):
        # 直前に終了済み
        pass


def communicate(
    process: subprocess.Popen,
    timeout: float,
) -> tuple[str, str]:
    """プロセスの終了を待ち、標準出力と標準エラー出力を返す

    タイムアウトした場合はプロセスを強制終了してから例外を再送出する。

    Raises:
        subprocess.TimeoutExpired: タイムアウトした場合
    """
    try:
        stdout, stderr = process.communicate(timeout=timeout)
    except subprocess.TimeoutExpired:
        process.kill()
        process.communicate()
        raise
    return _to_text(stdout), _to_text(stderr)


def _to_text(value: bytes | str | None) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value
