"""recflow wire constants.

Single source of truth for tag layouts and write-verification bounds.
Keep this file stable. Writers and readers must remain synchronized.
"""

# Tagged-envelope layout: the tag travels as the first key of the record mapping
ENVELOPE_TAG_FIELD = "flow_id"

# Prefixed-archive layout: [Tag(2)] followed by raw archive bytes, no padding
TAG_FMT = "<H"
TAG_LEN = 2

MIN_TAG = 0
MAX_TAG = 0xFFFF

# Verified write: fixed attempt budget, no backoff
DEFAULT_WRITE_ATTEMPTS = 3

# CRC-32C (Castagnoli), reflected
CRC32C_POLY = 0x82F63B78
CRC32C_INIT = 0xFFFFFFFF
