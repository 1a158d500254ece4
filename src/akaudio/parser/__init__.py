"""Parser module for akaudio.

Wwiseのコンテナ（.pck / .bnk / .wem / .chk）を判定し、解析するためのモジュール。
難読化パッケージの復号機能も提供する。
"""

from akaudio.parser.bank import (
    CHUNK_READERS,
    Bank,
    BankHeader,
    Chunk,
    DataChunk,
    DataIndexChunk,
    DataIndexEntry,
    HircChunk,
    HircSection,
    HircType,
    decode_bank,
)
from akaudio.parser.cipher import (
    decrypt,
    decrypt_asset,
    decrypt_package_header,
    derive_key,
    encrypt,
    xor_blocks,
)
from akaudio.parser.cursor import ByteCursor
from akaudio.parser.package import (
    FileEntry,
    FileTable,
    LanguageMap,
    Package,
    PackageHeader,
    PackageSummary,
    decode_package,
    get_bank_path,
    get_directory,
    get_path,
    language_name,
    package_summary,
)
from akaudio.parser.signature import (
    ContainerType,
    detect_container,
    extension_for,
    sniff_extension,
)

__all__ = [
    "CHUNK_READERS",
    "Bank",
    "BankHeader",
    "ByteCursor",
    "Chunk",
    "ContainerType",
    "DataChunk",
    "DataIndexChunk",
    "DataIndexEntry",
    "FileEntry",
    "FileTable",
    "HircChunk",
    "HircSection",
    "HircType",
    "LanguageMap",
    "Package",
    "PackageHeader",
    "PackageSummary",
    "decode_bank",
    "decode_package",
    "decrypt",
    "decrypt_asset",
    "decrypt_package_header",
    "derive_key",
    "detect_container",
    "encrypt",
    "extension_for",
    "get_bank_path",
    "get_directory",
    "get_path",
    "language_name",
    "package_summary",
    "sniff_extension",
    "xor_blocks",
]
