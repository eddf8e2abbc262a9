# Format version written by this package; readers reject anything newer.
FORMAT_VERSION = 0

# Record delimiter and the reserved terminator path
DELIM = b"\x00"
TERMINATOR_PATH = "\x00"

# Compression algorithm names (empty/None = no compression)
COMPRESSION_NONE = ""
COMPRESSION_GZIP = "gzip"
COMPRESSION_ZSTD = "zstd"
COMPRESSION_LZ4 = "lz4"

SUPPORTED_COMPRESSION = (COMPRESSION_GZIP, COMPRESSION_ZSTD, COMPRESSION_LZ4)

# Per-algorithm defaults used when the caller passes level 0
DEFAULT_GZIP_LEVEL = 6
DEFAULT_ZSTD_LEVEL = 3


# Mode word (same bit layout as Go's os.FileMode)
MODE_DIR = 1 << 31
MODE_APPEND = 1 << 30
MODE_EXCLUSIVE = 1 << 29
MODE_TEMPORARY = 1 << 28
MODE_SYMLINK = 1 << 27
MODE_DEVICE = 1 << 26
MODE_NAMED_PIPE = 1 << 25
MODE_SOCKET = 1 << 24
MODE_SETUID = 1 << 23
MODE_SETGID = 1 << 22
MODE_CHAR_DEVICE = 1 << 21
MODE_STICKY = 1 << 20
MODE_IRREGULAR = 1 << 19

MODE_TYPE = (
    MODE_DIR
    | MODE_SYMLINK
    | MODE_NAMED_PIPE
    | MODE_SOCKET
    | MODE_DEVICE
    | MODE_CHAR_DEVICE
    | MODE_IRREGULAR
)
MODE_PERM = 0o777


# Safety bounds for records read off the wire
MAX_HEADER_SIZE = 64 * 1024  # 64 KiB
MAX_LENGTH_DIGITS = 20

# Decode defaults
DEFAULT_PERMISSIONS = 0o640
DIR_EXTRA_PERMISSIONS = 0o100

# Copy buffer used by the filesystem helpers and the CLI
COPY_BUFFER_SIZE = 64 * 1024