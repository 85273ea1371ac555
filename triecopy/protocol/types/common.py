from enum import Enum, IntEnum


class NodeKind(str, Enum):
    BRANCH = "BRANCH"
    EXTENSION = "EXTENSION"
    LEAF = "LEAF"
    HASH = "HASH"

class MismatchReason(str, Enum):
    MISSING_ACCOUNT = "missing_account"     # present at source, absent at destination
    ACCOUNT_ENCODING = "account_encoding"   # account objects encode differently
    MISSING_CODE = "missing_code"           # code blob not stored at destination
    CODE_MISMATCH = "code_mismatch"         # stored code does not hash to its code hash
    STORAGE = "storage"                     # a storage slot value differs
    MISSING_NODE = "missing_node"           # destination trie is not closed
    CORRUPT_NODE = "corrupt_node"           # destination node or account does not decode

class BranchSlot(IntEnum):
    VALUE = 16

class MigrationError(Exception):
    pass

class MissingNode(MigrationError):
    """Hash is absent from the store (pruned past retention, or corrupted)."""

    def __init__(self, node_hash: bytes, context: str = ""):
        self.node_hash = bytes(node_hash)
        self.context = context
        msg = f"missing trie node 0x{self.node_hash.hex()}"
        if context:
            msg += f" ({context})"
        super().__init__(msg)

class DecodeError(MigrationError):
    """Bytes at a resolved hash don't parse as a valid node or account."""
    pass

class InvalidNode(DecodeError):
    pass

class RootMismatch(MigrationError):
    """Rebuilt root differs from the expected one."""

    def __init__(self, expected: bytes, actual: bytes):
        self.expected = bytes(expected)
        self.actual = bytes(actual)
        super().__init__(
            f"root mismatch: expected 0x{self.expected.hex()}, got 0x{self.actual.hex()}"
        )

class ScanInconclusive(MigrationError):
    """Retention scan exhausted history without finding both boundaries."""
    pass
