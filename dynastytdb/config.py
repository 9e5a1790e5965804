"""Default paths and constants for DB08 dynasty save decoding."""
from pathlib import Path


def derive_layout_path(save: Path) -> Path:
    """Derive the layout artifact path from the save path (sibling dir)."""
    return save.parent / "dynastytdb" / "tdb_layout.json"


def derive_export_dir(save: Path) -> Path:
    """Derive the CSV/JSON export directory for a save file."""
    return save.parent / "dynastytdb" / save.stem


# DB08 container format constants
DB_MAGIC = b"DB\x00\x08"
DB_ENDIAN_FLAG_OFFSET = 4      # 1 = big endian (informational only)
DB_LENGTH_OFFSET = 8           # u32 LE declared container length
DB_TABLE_COUNT_OFFSET = 0x10   # u32 LE table count
DB_HEADER_SIZE = 0x18          # Directory starts right after the header
DIRECTORY_ENTRY_SIZE = 8       # 4-byte name + u32 LE relative offset

# Table header fields
TABLE_RECORD_SIZE_OFFSET = 0x08   # u32 LE record size in bytes
TABLE_CAPACITY_OFFSET = 0x14      # u16 LE slot capacity
TABLE_RECORD_COUNT_OFFSET = 0x16  # u16 LE populated records
TABLE_FIELD_DEFS_OFFSET = 0x30    # Low-level field definitions start here
MAX_RECORD_SIZE = 16384

# Bytes hashed to identify a save in layout artifacts
HASH_PREFIX_SIZE = 1024 * 1024

LAYOUT_FORMAT = "dynasty-tracker-tdb-layout"

# Tables the season importer needs from DB1
REQUIRED_TABLES = (
    "TEAM", "SCHD", "TSSE", "BOWL", "COCH", "PLAY",
    "PSOF", "PSDE", "PSKI", "PSKP", "PSOL", "AAPL", "OSPA",
)

# Level -> rating lookup table embedded in PRLU
LOOKUP_TABLE = "PRLU"
LOOKUP_SIZE = 60
LOOKUP_INDEX_BITS = (6, 7, 8)
LOOKUP_VALUE_BITS = (7, 8)
LOOKUP_VALUE_MAX = 99

# Player name packing (PF01..PF10 / PL01..PL10)
NAME_MAX_CHARS = 10
FIRST_NAME_PREFIX = "PF"
LAST_NAME_PREFIX = "PL"
