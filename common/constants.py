"""Project-wide constants (e.g., token length, copy buffer size)."""

TOKEN_LENGTH: int = 40
TOKEN_ALPHABET: str = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789"

COPY_BUFFER_BYTES: int = 1024 * 1024  # 1 MiB per read when streaming chunks
DOWNLOAD_PIECE_BYTES: int = 64 * 1024

CHUNK_FILE_PREFIX: str = "chunk_"
PARTIAL_SUFFIX: str = ".partial"
ARCHIVE_SUFFIX: str = ".zip"

DEFAULT_PACKAGE_TTL_DAYS: int = 7
DEFAULT_SWEEP_INTERVAL_SECONDS: int = 3600
