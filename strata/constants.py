# Object identifiers
OID_RAWSZ = 20
OID_HEXSZ = OID_RAWSZ * 2
DEFAULT_HASH_ALGORITHM = "sha1"

# Object types
TYPE_BLOB = b"blob"
TYPE_TREE = b"tree"
TYPE_COMMIT = b"commit"

# Common tree entry modes
MODE_FILE = b"100644"
MODE_EXECUTABLE = b"100755"
MODE_SYMLINK = b"120000"
MODE_TREE = b"40000"

# Loose object storage
DEFAULT_COMPRESSION_LEVEL = 1  # matches core.looseCompression default
OBJECT_DIR_PREFIX_LEN = 2

# Index file
INDEX_MAGIC = b"DIRC"  # 4 bytes: "DIRC" (dircache)
INDEX_VERSION = 2
INDEX_ENTRY_FIXED_SIZE = 62
INDEX_ENTRY_ALIGN = 8

# Index entry flags
IFLAG_NAME_MASK = 0x0FFF
IFLAG_STAGE_MASK = 0x3000
IFLAG_STAGE_SHIFT = 12
IFLAG_EXTENDED = 1 << 14
IFLAG_ASSUME_VALID = 1 << 15

# Repository defaults used by the CLI
DEFAULT_GIT_DIR = ".git"
OBJECTS_DIRNAME = "objects"
INDEX_FILENAME = "index"
