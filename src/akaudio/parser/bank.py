"""SoundBank(.bnk)解析モジュール

BKHDヘッダーに続く型付きチャンク列を読み取り、
DIDX/DATAチャンクから埋め込み音声アセットを取り出す機能を提供する。

各チャンクは宣言サイズ分のペイロードだけを持つ独立したカーソルで読み取り、
読み取り後は必ず「チャンク開始位置 + 8 + 宣言サイズ」へ再同期する。
そのため未知のチャンクや解釈に失敗したチャンクがあっても後続のチャンクを読み進められる。
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import IntEnum

from akaudio.errors import InvalidFormatError, OutOfBoundsError, UnsupportedVariantError
from akaudio.parser.cursor import ByteCursor

logger = logging.getLogger(__name__)

BKHD_SIGNATURE = b"BKHD"
INIT_SIGNATURE = b"INIT"
PLAT_SIGNATURE = b"PLAT"
STMG_SIGNATURE = b"STMG"
ENVS_SIGNATURE = b"ENVS"
DIDX_SIGNATURE = b"DIDX"
DATA_SIGNATURE = b"DATA"
HIRC_SIGNATURE = b"HIRC"
STID_SIGNATURE = b"STID"

# シグネチャ(4) + サイズ(4)
CHUNK_HEADER_SIZE = 8

# DIDXエントリ: ID(4) + オフセット(4) + 長さ(4)
DIDX_ENTRY_SIZE = 12

# バージョン以降のヘッダーフィールド（名前, バイト幅）
_HEADER_LAYOUT: tuple[tuple[str, int], ...] = (
    ("version", 4),
    ("bank_id", 4),
    ("language_id", 4),
    ("alignment", 2),
    ("device_allocated", 2),
    ("project_id", 4),
)


class HircType(IntEnum):
    """HIRCセクションの種別"""

    NONE = 0
    STATE = 1
    SOUND = 2
    ACTION = 3
    EVENT = 4
    RANDOM_SEQUENCE_CONTAINER = 5
    SWITCH_CONTAINER = 6
    ACTOR_MIXER = 7
    BUS = 8
    LAYER_CONTAINER = 9
    MUSIC_SEGMENT = 10
    MUSIC_TRACK = 11
    MUSIC_SWITCH = 12
    MUSIC_RANDOM_SEQUENCE = 13
    ATTENUATION = 14
    DIALOGUE_EVENT = 15
    FX_SHARE_SET = 16
    FX_CUSTOM = 17
    AUX_BUS = 18
    LFO_MODULATOR = 19
    ENVELOPE_MODULATOR = 20
    AUDIO_DEVICE = 21
    TIME_MODULATOR = 22


@dataclass(frozen=True)
class BankHeader:
    """BKHDヘッダー

    header_size はシグネチャとサイズフィールドを除いたヘッダー本体のバイト数。
    宣言サイズに含まれないフィールドは0のままになる。
    """

    signature: bytes
    header_size: int
    version: int = 0
    bank_id: int = 0
    language_id: int = 0
    alignment: int = 0
    device_allocated: int = 0
    project_id: int = 0


@dataclass
class Chunk:
    """汎用チャンク

    ペイロードを解釈せず、シグネチャと宣言サイズのみを保持する。

    Attributes:
        signature: 4バイトのチャンクシグネチャ
        size: 宣言されたペイロードサイズ
        offset: バンク先頭からのチャンク開始位置
    """

    signature: bytes
    size: int
    offset: int

    @property
    def payload_offset(self) -> int:
        """ペイロード開始位置"""
        return self.offset + CHUNK_HEADER_SIZE

    @property
    def end_offset(self) -> int:
        """次のチャンクの開始位置"""
        return self.payload_offset + self.size

    def read_payload(self, cursor: ByteCursor) -> None:
        """ペイロードを読み取る（汎用チャンクは何もしない）

        Args:
            cursor: ペイロード範囲のみを持つカーソル
        """


@dataclass
class InitChunk(Chunk):
    """INITチャンク: プラグイン一覧"""

    plugins: dict[int, str] = field(default_factory=dict)

    def read_payload(self, cursor: ByteCursor) -> None:
        count = cursor.read_u32()
        for _ in range(count):
            plugin_id = cursor.read_u32()
            cursor.read_u32()  # 名前の長さ
            self.plugins[plugin_id] = cursor.read_cstring()


@dataclass
class PlatformChunk(Chunk):
    """PLATチャンク: カスタムプラットフォーム名"""

    platform: str = ""

    def read_payload(self, cursor: ByteCursor) -> None:
        cursor.read_u32()  # 文字列長
        self.platform = cursor.read_cstring()


@dataclass(frozen=True)
class GraphPoint:
    """RTPCカーブの制御点"""

    source: float
    target: float
    interpolation: int


def _read_graph_points(cursor: ByteCursor, count: int) -> list[GraphPoint]:
    return [
        GraphPoint(
            source=cursor.read_f32(),
            target=cursor.read_f32(),
            interpolation=cursor.read_u32(),
        )
        for _ in range(count)
    ]


@dataclass(frozen=True)
class EnvCurve:
    """ENVSチャンクのカーブ"""

    enabled: bool
    scaling: int
    points: tuple[GraphPoint, ...]


@dataclass
class EnvSettingsChunk(Chunk):
    """ENVSチャンク: 環境設定カーブ（2グループ x 3カーブ）"""

    curves: dict[int, dict[int, EnvCurve]] = field(default_factory=dict)

    def read_payload(self, cursor: ByteCursor) -> None:
        for group in range(2):
            self.curves[group] = {}
            for index in range(3):
                enabled = cursor.read_bool()
                scaling = cursor.read_u8()
                point_count = cursor.read_u16()
                points = tuple(_read_graph_points(cursor, point_count))
                self.curves[group][index] = EnvCurve(enabled, scaling, points)


@dataclass(frozen=True)
class StateTransition:
    """ステート遷移時間"""

    from_state: int
    to_state: int
    transition_time: int


@dataclass(frozen=True)
class StateGroup:
    """ステートグループ"""

    group_id: int
    default_transition_time: int
    transitions: tuple[StateTransition, ...]


@dataclass(frozen=True)
class SwitchGroup:
    """RTPCに連動するスイッチグループ"""

    group_id: int
    rtpc_id: int
    rtpc_type: int
    points: tuple[GraphPoint, ...]


@dataclass(frozen=True)
class RtpcRamping:
    """RTPCパラメータのランピング設定"""

    rtpc_id: int
    default_value: float
    ramping_type: int
    ramp_up: float
    ramp_down: float
    bind_to_builtin: bool


@dataclass(frozen=True)
class AcousticTexture:
    """アコースティックテクスチャ"""

    texture_id: int
    absorption_offset: float
    absorption_low: float
    absorption_mid_low: float
    absorption_mid_high: float
    absorption_high: float
    scattering: float


@dataclass
class GlobalSettingsChunk(Chunk):
    """STMGチャンク: グローバル設定"""

    volume_threshold: float = 0.0
    max_voices: int = 0
    max_dangerous_virtual_voices: int = 0
    state_groups: list[StateGroup] = field(default_factory=list)
    switch_groups: list[SwitchGroup] = field(default_factory=list)
    rtpc_rampings: list[RtpcRamping] = field(default_factory=list)
    acoustic_textures: list[AcousticTexture] = field(default_factory=list)

    def read_payload(self, cursor: ByteCursor) -> None:
        self.volume_threshold = cursor.read_f32()
        self.max_voices = cursor.read_u16()
        self.max_dangerous_virtual_voices = cursor.read_u16()

        for _ in range(cursor.read_u32()):
            group_id = cursor.read_u32()
            default_time = cursor.read_i32()
            transitions = tuple(
                StateTransition(cursor.read_u32(), cursor.read_u32(), cursor.read_i32())
                for _ in range(cursor.read_u32())
            )
            self.state_groups.append(StateGroup(group_id, default_time, transitions))

        for _ in range(cursor.read_u32()):
            group_id = cursor.read_u32()
            rtpc_id = cursor.read_u32()
            rtpc_type = cursor.read_u8()
            points = tuple(_read_graph_points(cursor, cursor.read_u32()))
            self.switch_groups.append(SwitchGroup(group_id, rtpc_id, rtpc_type, points))

        for _ in range(cursor.read_u32()):
            self.rtpc_rampings.append(
                RtpcRamping(
                    rtpc_id=cursor.read_u32(),
                    default_value=cursor.read_f32(),
                    ramping_type=cursor.read_u32(),
                    ramp_up=cursor.read_f32(),
                    ramp_down=cursor.read_f32(),
                    bind_to_builtin=cursor.read_bool(),
                )
            )

        for _ in range(cursor.read_u32()):
            self.acoustic_textures.append(
                AcousticTexture(
                    texture_id=cursor.read_u32(),
                    absorption_offset=cursor.read_f32(),
                    absorption_low=cursor.read_f32(),
                    absorption_mid_low=cursor.read_f32(),
                    absorption_mid_high=cursor.read_f32(),
                    absorption_high=cursor.read_f32(),
                    scattering=cursor.read_f32(),
                )
            )


@dataclass(frozen=True)
class DataIndexEntry:
    """DIDXエントリ

    Attributes:
        asset_id: アセットID
        offset: DATAチャンクのペイロード先頭からのオフセット
        length: バイト数
    """

    asset_id: int
    offset: int
    length: int


@dataclass
class DataIndexChunk(Chunk):
    """DIDXチャンク: アセットID -> エントリ一覧

    同じIDが複数のセグメントに現れることがあるため、値はリストで保持する。
    """

    files: dict[int, list[DataIndexEntry]] = field(default_factory=dict)

    def read_payload(self, cursor: ByteCursor) -> None:
        for _ in range(cursor.remaining // DIDX_ENTRY_SIZE):
            entry = DataIndexEntry(
                asset_id=cursor.read_u32(),
                offset=cursor.read_u32(),
                length=cursor.read_u32(),
            )
            self.files.setdefault(entry.asset_id, []).append(entry)

    @property
    def entries(self) -> list[DataIndexEntry]:
        """全エントリ（ID順ではなく出現順）"""
        return [entry for entries in self.files.values() for entry in entries]


@dataclass
class DataChunk(Chunk):
    """DATAチャンク: アセットのペイロード"""

    payload: bytes = b""

    def read_payload(self, cursor: ByteCursor) -> None:
        self.payload = cursor.read_bytes(cursor.remaining)

    def get_file(self, entry: DataIndexEntry) -> bytes:
        """DIDXエントリに対応するバイト列を取り出す

        Args:
            entry: DIDXエントリ

        Returns:
            ペイロード先頭から entry.offset の位置にある entry.length バイト

        Raises:
            OutOfBoundsError: エントリがペイロードの範囲外を指す場合
        """
        cursor = ByteCursor(self.payload)
        cursor.seek_to(entry.offset)
        return cursor.read_bytes(entry.length)


@dataclass(frozen=True)
class HircSection:
    """HIRCセクション

    Attributes:
        type_code: セクション種別の数値
        size: セクション本体のバイト数
        offset: バンク先頭からのセクション本体の位置
        object_id: 本体先頭のオブジェクトID（本体が4バイト未満の場合はNone）
    """

    type_code: int
    size: int
    offset: int
    object_id: int | None

    @property
    def hirc_type(self) -> HircType | None:
        """既知の種別であれば HircType を返す"""
        try:
            return HircType(self.type_code)
        except ValueError:
            return None


@dataclass
class HircChunk(Chunk):
    """HIRCチャンク: オブジェクト階層

    各セクションは自身の長さを持つため、内部構造を解釈せずに列挙してスキップする。
    """

    sections: list[HircSection] = field(default_factory=list)

    def read_payload(self, cursor: ByteCursor) -> None:
        for _ in range(cursor.read_u32()):
            type_code = cursor.read_u8()
            size = cursor.read_u32()
            body_position = cursor.position
            object_id = cursor.peek_u32() if size >= 4 and cursor.remaining >= 4 else None
            cursor.skip(size)
            self.sections.append(
                HircSection(
                    type_code=type_code,
                    size=size,
                    offset=self.payload_offset + body_position,
                    object_id=object_id,
                )
            )

    def count_by_type(self) -> dict[int, int]:
        """種別ごとのセクション数を返す"""
        counts: dict[int, int] = {}
        for section in self.sections:
            counts[section.type_code] = counts.get(section.type_code, 0) + 1
        return counts


# シグネチャ -> チャンク型。未登録のシグネチャは汎用 Chunk として読み飛ばす
CHUNK_READERS: dict[bytes, type[Chunk]] = {
    INIT_SIGNATURE: InitChunk,
    PLAT_SIGNATURE: PlatformChunk,
    STMG_SIGNATURE: GlobalSettingsChunk,
    ENVS_SIGNATURE: EnvSettingsChunk,
    DIDX_SIGNATURE: DataIndexChunk,
    DATA_SIGNATURE: DataChunk,
    HIRC_SIGNATURE: HircChunk,
}


@dataclass
class Bank:
    """解析済みSoundBank

    Attributes:
        header: BKHDヘッダー
        chunks: シグネチャ -> チャンク（同じシグネチャは後勝ち）
        chunk_order: 出現順のチャンク一覧
    """

    header: BankHeader
    chunks: dict[bytes, Chunk] = field(default_factory=dict)
    chunk_order: list[Chunk] = field(default_factory=list)

    def add_chunk(self, chunk: Chunk) -> None:
        """チャンクを登録する"""
        self.chunks[chunk.signature] = chunk
        self.chunk_order.append(chunk)

    def _typed(self, signature: bytes, chunk_type: type[Chunk]) -> Chunk | None:
        chunk = self.chunks.get(signature)
        return chunk if isinstance(chunk, chunk_type) else None

    @property
    def init(self) -> InitChunk | None:
        """INITチャンク"""
        return self._typed(INIT_SIGNATURE, InitChunk)  # type: ignore[return-value]

    @property
    def platform(self) -> PlatformChunk | None:
        """PLATチャンク"""
        return self._typed(PLAT_SIGNATURE, PlatformChunk)  # type: ignore[return-value]

    @property
    def global_settings(self) -> GlobalSettingsChunk | None:
        """STMGチャンク"""
        return self._typed(STMG_SIGNATURE, GlobalSettingsChunk)  # type: ignore[return-value]

    @property
    def env_settings(self) -> EnvSettingsChunk | None:
        """ENVSチャンク"""
        return self._typed(ENVS_SIGNATURE, EnvSettingsChunk)  # type: ignore[return-value]

    @property
    def data_index(self) -> DataIndexChunk | None:
        """DIDXチャンク"""
        return self._typed(DIDX_SIGNATURE, DataIndexChunk)  # type: ignore[return-value]

    @property
    def data(self) -> DataChunk | None:
        """DATAチャンク"""
        return self._typed(DATA_SIGNATURE, DataChunk)  # type: ignore[return-value]

    @property
    def hierarchy(self) -> HircChunk | None:
        """HIRCチャンク"""
        return self._typed(HIRC_SIGNATURE, HircChunk)  # type: ignore[return-value]

    @property
    def has_assets(self) -> bool:
        """DIDXとDATAの両方を持つかどうか"""
        return self.data_index is not None and self.data is not None

    def iter_assets(self) -> Iterator[tuple[DataIndexEntry, bytes]]:
        """埋め込みアセットを列挙する

        DIDXまたはDATAが存在しない場合は何も返さない。

        Yields:
            (DIDXエントリ, アセットのバイト列)

        Raises:
            OutOfBoundsError: エントリがDATAの範囲外を指す場合
        """
        data_index = self.data_index
        data = self.data
        if data_index is None or data is None:
            return
        for entry in data_index.entries:
            yield entry, data.get_file(entry)


def _read_header(cursor: ByteCursor) -> BankHeader:
    """BKHDヘッダーを読み取る

    ヘッダー本体は header_size バイトとして切り出し、
    読み取り後のカーソルは必ずヘッダー本体の終端に位置する。
    """
    signature = cursor.read_bytes(4)
    if signature != BKHD_SIGNATURE:
        raise InvalidFormatError(BKHD_SIGNATURE, signature, ".bnk")

    header_size = cursor.read_u32()
    body = cursor.sub_cursor(header_size)

    values: dict[str, int] = {}
    for name, width in _HEADER_LAYOUT:
        if body.remaining < width:
            break
        values[name] = int.from_bytes(body.read_bytes(width), "little")

    return BankHeader(signature=signature, header_size=header_size, **values)


def _read_chunk(cursor: ByteCursor) -> Chunk:
    """チャンクを1つ読み取り、カーソルを次のチャンクへ再同期する

    Raises:
        OutOfBoundsError: 宣言サイズがバッファ終端を越える場合
    """
    start = cursor.position
    signature = cursor.peek_bytes(4)
    cursor.skip(4)
    size = cursor.read_u32()
    resync = start + CHUNK_HEADER_SIZE + size

    payload = cursor.sub_cursor(size)

    chunk_type = CHUNK_READERS.get(signature, Chunk)
    chunk = chunk_type(signature=signature, size=size, offset=start)
    try:
        try:
            chunk.read_payload(payload)
        except OutOfBoundsError as e:
            raise UnsupportedVariantError(
                f"{signature!r} チャンクのペイロードを解釈できません: {e}"
            ) from e
    except UnsupportedVariantError as e:
        logger.warning("%s (offset=0x%X) をサイズのみでスキップします", e, start)
        chunk = Chunk(signature=signature, size=size, offset=start)

    cursor.seek_to(resync)
    return chunk


def decode_bank(data: bytes | bytearray | memoryview) -> Bank:
    """SoundBankを解析する

    Args:
        data: .bnk ファイルのバイト列

    Returns:
        解析済みのBank

    Raises:
        InvalidFormatError: BKHDシグネチャで始まらない場合
        OutOfBoundsError: ヘッダーまたはチャンクの宣言サイズがバッファ終端を越える場合
    """
    cursor = ByteCursor(data)
    bank = Bank(header=_read_header(cursor))

    while cursor.remaining >= CHUNK_HEADER_SIZE:
        bank.add_chunk(_read_chunk(cursor))

    return bank
