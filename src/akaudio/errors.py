"""例外定義モジュール

コンテナ解析、復号、ファイル出力、外部変換ツール実行で発生する例外を定義する。
InvalidFormatError と OutOfBoundsError は現在のコンテナの解析を中断させる致命的な例外、
UnsupportedVariantError と CipherMismatchError は呼び出し側でフォールバックして回復する例外である。
"""

from __future__ import annotations


class AkaudioError(Exception):
    """akaudioの例外基底クラス"""

    pass


class InvalidFormatError(AkaudioError):
    """必須ヘッダーのマジックナンバーが一致しない場合に発生する例外

    Attributes:
        expected: 期待したシグネチャ
        actual: 実際に読み取ったシグネチャ
    """

    def __init__(self, expected: bytes, actual: bytes, container: str = "") -> None:
        """期待値と実際の値を指定して初期化する

        Args:
            expected: 期待したシグネチャ
            actual: 実際に読み取ったシグネチャ
            container: コンテナ種別の表示名（例: ".pck"）
        """
        self.expected = expected
        self.actual = actual
        label = f"{container} " if container else ""
        super().__init__(
            f"不正な{label}ファイル形式です: シグネチャ {expected!r} が必要ですが {actual!r} でした"
        )


class OutOfBoundsError(AkaudioError):
    """バッファ終端を越えて読み取ろうとした場合に発生する例外

    Attributes:
        position: 読み取り開始位置
        requested: 要求したバイト数
        available: 残りバイト数
    """

    def __init__(self, position: int, requested: int, available: int) -> None:
        """読み取り位置と要求サイズを指定して初期化する

        Args:
            position: 読み取り開始位置
            requested: 要求したバイト数
            available: 残りバイト数
        """
        self.position = position
        self.requested = requested
        self.available = available
        super().__init__(
            f"バッファ範囲外の読み取りです: 位置 0x{position:X} から {requested} バイト要求 "
            f"(残り {available} バイト)"
        )


class UnsupportedVariantError(AkaudioError):
    """チャンク／テーブルの読み取り処理が対応していない形式の場合に発生する例外

    サイズ情報によるスキップにフォールバックするため、致命的ではない。
    """

    pass


class CipherMismatchError(AkaudioError):
    """復号結果が既知のシグネチャに一致しない場合に発生する例外

    Attributes:
        asset_id: 復号対象アセットのID
    """

    def __init__(self, asset_id: int) -> None:
        """アセットIDを指定して初期化する

        Args:
            asset_id: 復号対象アセットのID
        """
        self.asset_id = asset_id
        super().__init__(f"アセット {asset_id} の復号結果を認識できません")


class IOFailureError(AkaudioError):
    """ファイルシステム操作に失敗した場合に発生する例外"""

    pass


class TranscodeError(AkaudioError):
    """外部変換ツールが異常終了した場合に発生する例外

    Attributes:
        command: 実行したコマンド名
        returncode: 終了コード（起動できなかった場合はNone）
    """

    def __init__(self, command: str, returncode: int | None, detail: str = "") -> None:
        """コマンド名と終了コードを指定して初期化する

        Args:
            command: 実行したコマンド名
            returncode: 終了コード（起動できなかった場合はNone）
            detail: 標準エラー出力などの詳細
        """
        self.command = command
        self.returncode = returncode
        message = f"{command} が終了コード {returncode} で失敗しました"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
