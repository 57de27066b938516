"""
move_api.binary.file_format — in-memory model of compiled Move units.

Everything here is immutable: tables are tuples of frozen dataclasses, indices
are plain ints into sibling tables. A `CompiledModule` or `CompiledScript` is
only ever produced whole by the deserializer (or built by hand for tests and
handed to the serializer).

Binary layout (versions 4..6)
-----------------------------
    magic        : a1 1c eb 0b
    version      : u32 little-endian
    table_count  : ULEB128
    table header : kind u8, offset ULEB128, length ULEB128   (× table_count)
    table bodies : concatenated, addressed relative to the end of the headers
    trailer      : module (v5+): self module handle index
                   script: type parameters, parameters signature, code unit
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum, IntFlag
from typing import Any, Dict, Iterator, List, Optional, Tuple

from ..identifiers import ModuleId

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

MAGIC = b"\xa1\x1c\xeb\x0b"

VERSION_4 = 4
VERSION_5 = 5
VERSION_6 = 6
VERSION_MIN = VERSION_4
VERSION_MAX = VERSION_6

TABLE_COUNT_MAX = 255
TABLE_OFFSET_MAX = 0xFFFF_FFFF
TABLE_SIZE_MAX = 0xFFFF_FFFF
TABLE_INDEX_MAX = 0xFFFF
SIGNATURE_SIZE_MAX = 255
FIELD_COUNT_MAX = 255
FIELD_OFFSET_MAX = 255
TYPE_PARAMETER_COUNT_MAX = 255
TYPE_PARAMETER_INDEX_MAX = 0xFFFF
ACQUIRES_COUNT_MAX = 255
BYTECODE_COUNT_MAX = 0xFFFF
BYTECODE_INDEX_MAX = 0xFFFF
IDENTIFIER_SIZE_MAX = 0xFFFF
CONSTANT_SIZE_MAX = 0xFFFF
METADATA_KEY_SIZE_MAX = 1023
METADATA_VALUE_SIZE_MAX = 0xFFFF
SIGNATURE_TOKEN_DEPTH_MAX = 256

ADDRESS_SIZE = 32


class TableType(IntEnum):
    MODULE_HANDLES = 0x1
    STRUCT_HANDLES = 0x2
    FUNCTION_HANDLES = 0x3
    FUNCTION_INST = 0x4
    SIGNATURES = 0x5
    CONSTANT_POOL = 0x6
    IDENTIFIERS = 0x7
    ADDRESS_IDENTIFIERS = 0x8
    STRUCT_DEFS = 0xA
    STRUCT_DEF_INST = 0xB
    FUNCTION_DEFS = 0xC
    FIELD_HANDLE = 0xD
    FIELD_INST = 0xE
    FRIEND_DECLS = 0xF
    METADATA = 0x10


# Tables a script may not carry.
MODULE_ONLY_TABLES = frozenset(
    {
        TableType.STRUCT_DEFS,
        TableType.STRUCT_DEF_INST,
        TableType.FUNCTION_DEFS,
        TableType.FIELD_HANDLE,
        TableType.FIELD_INST,
        TableType.FRIEND_DECLS,
    }
)


class SerializedType(IntEnum):
    BOOL = 0x1
    U8 = 0x2
    U64 = 0x3
    U128 = 0x4
    ADDRESS = 0x5
    REFERENCE = 0x6
    MUTABLE_REFERENCE = 0x7
    STRUCT = 0x8
    TYPE_PARAMETER = 0x9
    VECTOR = 0xA
    STRUCT_INST = 0xB
    SIGNER = 0xC
    U16 = 0xD
    U32 = 0xE
    U256 = 0xF


V6_TYPES = frozenset({SerializedType.U16, SerializedType.U32, SerializedType.U256})


class Ability(IntFlag):
    COPY = 0x1
    DROP = 0x2
    STORE = 0x4
    KEY = 0x8


ABILITY_ALL = 0xF
_ABILITY_ORDER = (
    (Ability.COPY, "copy"),
    (Ability.DROP, "drop"),
    (Ability.STORE, "store"),
    (Ability.KEY, "key"),
)


def ability_names(mask: int) -> List[str]:
    """Ability set as names in canonical order (copy, drop, store, key)."""
    return [name for bit, name in _ABILITY_ORDER if mask & bit]


class Visibility(IntEnum):
    PRIVATE = 0x0
    PUBLIC = 0x1
    FRIEND = 0x3


# Pre-v5 encoding of "public entry".
VISIBILITY_DEPRECATED_SCRIPT = 0x2

FUNCTION_FLAG_NATIVE = 0x2
FUNCTION_FLAG_ENTRY = 0x4

STRUCT_FLAG_NATIVE = 0x1
STRUCT_FLAG_DECLARED = 0x2


class Opcode(IntEnum):
    POP = 0x01
    RET = 0x02
    BR_TRUE = 0x03
    BR_FALSE = 0x04
    BRANCH = 0x05
    LD_U64 = 0x06
    LD_CONST = 0x07
    LD_TRUE = 0x08
    LD_FALSE = 0x09
    COPY_LOC = 0x0A
    MOVE_LOC = 0x0B
    ST_LOC = 0x0C
    MUT_BORROW_LOC = 0x0D
    IMM_BORROW_LOC = 0x0E
    MUT_BORROW_FIELD = 0x0F
    IMM_BORROW_FIELD = 0x10
    CALL = 0x11
    PACK = 0x12
    UNPACK = 0x13
    READ_REF = 0x14
    WRITE_REF = 0x15
    ADD = 0x16
    SUB = 0x17
    MUL = 0x18
    MOD = 0x19
    DIV = 0x1A
    BIT_OR = 0x1B
    BIT_AND = 0x1C
    XOR = 0x1D
    OR = 0x1E
    AND = 0x1F
    NOT = 0x20
    EQ = 0x21
    NEQ = 0x22
    LT = 0x23
    GT = 0x24
    LE = 0x25
    GE = 0x26
    ABORT = 0x27
    NOP = 0x28
    EXISTS = 0x29
    MUT_BORROW_GLOBAL = 0x2A
    IMM_BORROW_GLOBAL = 0x2B
    MOVE_FROM = 0x2C
    MOVE_TO = 0x2D
    FREEZE_REF = 0x2E
    SHL = 0x2F
    SHR = 0x30
    LD_U8 = 0x31
    LD_U128 = 0x32
    CAST_U8 = 0x33
    CAST_U64 = 0x34
    CAST_U128 = 0x35
    MUT_BORROW_FIELD_GENERIC = 0x36
    IMM_BORROW_FIELD_GENERIC = 0x37
    CALL_GENERIC = 0x38
    PACK_GENERIC = 0x39
    UNPACK_GENERIC = 0x3A
    EXISTS_GENERIC = 0x3B
    MUT_BORROW_GLOBAL_GENERIC = 0x3C
    IMM_BORROW_GLOBAL_GENERIC = 0x3D
    MOVE_FROM_GENERIC = 0x3E
    MOVE_TO_GENERIC = 0x3F
    VEC_PACK = 0x40
    VEC_LEN = 0x41
    VEC_IMM_BORROW = 0x42
    VEC_MUT_BORROW = 0x43
    VEC_PUSH_BACK = 0x44
    VEC_POP_BACK = 0x45
    VEC_UNPACK = 0x46
    VEC_SWAP = 0x47
    LD_U16 = 0x48
    LD_U32 = 0x49
    LD_U256 = 0x4A
    CAST_U16 = 0x4B
    CAST_U32 = 0x4C
    CAST_U256 = 0x4D


V6_OPCODES = frozenset(
    {
        Opcode.LD_U16,
        Opcode.LD_U32,
        Opcode.LD_U256,
        Opcode.CAST_U16,
        Opcode.CAST_U32,
        Opcode.CAST_U256,
    }
)


class Operand(IntEnum):
    """Shape of the immediate that follows an opcode byte."""

    NONE = 0
    U8 = 1
    U16 = 2
    U32 = 3
    U64 = 4
    U128 = 5
    U256 = 6
    CODE_OFFSET = 7
    LOCAL = 8
    CONSTANT = 9
    FIELD_HANDLE = 10
    FIELD_INST = 11
    FUNCTION_HANDLE = 12
    FUNCTION_INST = 13
    STRUCT_DEF = 14
    STRUCT_DEF_INST = 15
    SIGNATURE = 16
    SIGNATURE_AND_COUNT = 17


_OPERANDS: Dict[Opcode, Operand] = {
    Opcode.BR_TRUE: Operand.CODE_OFFSET,
    Opcode.BR_FALSE: Operand.CODE_OFFSET,
    Opcode.BRANCH: Operand.CODE_OFFSET,
    Opcode.LD_U8: Operand.U8,
    Opcode.LD_U16: Operand.U16,
    Opcode.LD_U32: Operand.U32,
    Opcode.LD_U64: Operand.U64,
    Opcode.LD_U128: Operand.U128,
    Opcode.LD_U256: Operand.U256,
    Opcode.LD_CONST: Operand.CONSTANT,
    Opcode.COPY_LOC: Operand.LOCAL,
    Opcode.MOVE_LOC: Operand.LOCAL,
    Opcode.ST_LOC: Operand.LOCAL,
    Opcode.MUT_BORROW_LOC: Operand.LOCAL,
    Opcode.IMM_BORROW_LOC: Operand.LOCAL,
    Opcode.MUT_BORROW_FIELD: Operand.FIELD_HANDLE,
    Opcode.IMM_BORROW_FIELD: Operand.FIELD_HANDLE,
    Opcode.MUT_BORROW_FIELD_GENERIC: Operand.FIELD_INST,
    Opcode.IMM_BORROW_FIELD_GENERIC: Operand.FIELD_INST,
    Opcode.CALL: Operand.FUNCTION_HANDLE,
    Opcode.CALL_GENERIC: Operand.FUNCTION_INST,
    Opcode.PACK: Operand.STRUCT_DEF,
    Opcode.UNPACK: Operand.STRUCT_DEF,
    Opcode.EXISTS: Operand.STRUCT_DEF,
    Opcode.MUT_BORROW_GLOBAL: Operand.STRUCT_DEF,
    Opcode.IMM_BORROW_GLOBAL: Operand.STRUCT_DEF,
    Opcode.MOVE_FROM: Operand.STRUCT_DEF,
    Opcode.MOVE_TO: Operand.STRUCT_DEF,
    Opcode.PACK_GENERIC: Operand.STRUCT_DEF_INST,
    Opcode.UNPACK_GENERIC: Operand.STRUCT_DEF_INST,
    Opcode.EXISTS_GENERIC: Operand.STRUCT_DEF_INST,
    Opcode.MUT_BORROW_GLOBAL_GENERIC: Operand.STRUCT_DEF_INST,
    Opcode.IMM_BORROW_GLOBAL_GENERIC: Operand.STRUCT_DEF_INST,
    Opcode.MOVE_FROM_GENERIC: Operand.STRUCT_DEF_INST,
    Opcode.MOVE_TO_GENERIC: Operand.STRUCT_DEF_INST,
    Opcode.VEC_PACK: Operand.SIGNATURE_AND_COUNT,
    Opcode.VEC_UNPACK: Operand.SIGNATURE_AND_COUNT,
    Opcode.VEC_LEN: Operand.SIGNATURE,
    Opcode.VEC_IMM_BORROW: Operand.SIGNATURE,
    Opcode.VEC_MUT_BORROW: Operand.SIGNATURE,
    Opcode.VEC_PUSH_BACK: Operand.SIGNATURE,
    Opcode.VEC_POP_BACK: Operand.SIGNATURE,
    Opcode.VEC_SWAP: Operand.SIGNATURE,
}


def operand_of(op: Opcode) -> Operand:
    return _OPERANDS.get(op, Operand.NONE)


# ---------------------------------------------------------------------------
# Table entries
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ModuleHandle:
    address: int
    name: int


@dataclass(frozen=True)
class StructTypeParameter:
    constraints: int = 0
    is_phantom: bool = False


@dataclass(frozen=True)
class StructHandle:
    module: int
    name: int
    abilities: int = 0
    type_parameters: Tuple[StructTypeParameter, ...] = ()


@dataclass(frozen=True)
class FunctionHandle:
    module: int
    name: int
    parameters: int
    return_: int
    type_parameters: Tuple[int, ...] = ()


@dataclass(frozen=True)
class FieldHandle:
    owner: int
    field: int


@dataclass(frozen=True)
class StructDefInstantiation:
    def_: int
    type_parameters: int


@dataclass(frozen=True)
class FunctionInstantiation:
    handle: int
    type_parameters: int


@dataclass(frozen=True)
class FieldInstantiation:
    handle: int
    type_parameters: int


@dataclass(frozen=True)
class SignatureToken:
    """
    One node of a type in a signature.

    `index` is the struct handle (STRUCT / STRUCT_INST) or the type parameter
    position (TYPE_PARAMETER). `args` holds the element of a vector, the target
    of a reference, or the type arguments of a struct instantiation.
    """

    kind: SerializedType
    index: int = 0
    args: Tuple["SignatureToken", ...] = ()

    def walk(self) -> Iterator["SignatureToken"]:
        """Pre-order traversal of this token and every nested token."""
        stack = [self]
        while stack:
            tok = stack.pop()
            yield tok
            stack.extend(reversed(tok.args))

    # Convenience constructors, mostly for tests and builders.
    @classmethod
    def prim(cls, kind: SerializedType) -> "SignatureToken":
        return cls(kind)

    @classmethod
    def vector(cls, elem: "SignatureToken") -> "SignatureToken":
        return cls(SerializedType.VECTOR, 0, (elem,))

    @classmethod
    def reference(cls, inner: "SignatureToken", *, mutable: bool = False) -> "SignatureToken":
        kind = SerializedType.MUTABLE_REFERENCE if mutable else SerializedType.REFERENCE
        return cls(kind, 0, (inner,))

    @classmethod
    def struct(cls, handle: int, *type_args: "SignatureToken") -> "SignatureToken":
        if type_args:
            return cls(SerializedType.STRUCT_INST, handle, tuple(type_args))
        return cls(SerializedType.STRUCT, handle)

    @classmethod
    def type_param(cls, idx: int) -> "SignatureToken":
        return cls(SerializedType.TYPE_PARAMETER, idx)


Signature = Tuple[SignatureToken, ...]


@dataclass(frozen=True)
class Constant:
    type_: SignatureToken
    data: bytes


@dataclass(frozen=True)
class Metadata:
    key: bytes
    value: bytes


@dataclass(frozen=True)
class FieldDefinition:
    name: int
    signature: SignatureToken


@dataclass(frozen=True)
class StructDefinition:
    struct_handle: int
    # None for native structs.
    fields: Optional[Tuple[FieldDefinition, ...]] = ()

    @property
    def is_native(self) -> bool:
        return self.fields is None


@dataclass(frozen=True)
class Bytecode:
    op: Opcode
    # int for single immediates, (signature, count) for VEC_PACK / VEC_UNPACK.
    arg: Any = None


@dataclass(frozen=True)
class CodeUnit:
    locals: int
    code: Tuple[Bytecode, ...] = ()


@dataclass(frozen=True)
class FunctionDefinition:
    function: int
    visibility: Visibility = Visibility.PRIVATE
    is_entry: bool = False
    acquires_global_resources: Tuple[int, ...] = ()
    # None for native functions.
    code: Optional[CodeUnit] = None

    @property
    def is_native(self) -> bool:
        return self.code is None


# ---------------------------------------------------------------------------
# Compiled units
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class _CommonTables:
    version: int
    module_handles: Tuple[ModuleHandle, ...] = ()
    struct_handles: Tuple[StructHandle, ...] = ()
    function_handles: Tuple[FunctionHandle, ...] = ()
    function_instantiations: Tuple[FunctionInstantiation, ...] = ()
    signatures: Tuple[Signature, ...] = ()
    identifiers: Tuple[str, ...] = ()
    address_identifiers: Tuple[bytes, ...] = ()
    constant_pool: Tuple[Constant, ...] = ()
    metadata: Tuple[Metadata, ...] = ()

    def identifier_at(self, idx: int) -> str:
        return self.identifiers[idx]

    def address_at(self, idx: int) -> bytes:
        return self.address_identifiers[idx]

    def signature_at(self, idx: int) -> Signature:
        return self.signatures[idx]

    def module_id_for_handle(self, handle: ModuleHandle) -> ModuleId:
        return ModuleId(self.address_at(handle.address), self.identifier_at(handle.name))

    def struct_name(self, idx: int) -> str:
        return self.identifier_at(self.struct_handles[idx].name)

    def struct_module_id(self, idx: int) -> ModuleId:
        return self.module_id_for_handle(self.module_handles[self.struct_handles[idx].module])


@dataclass(frozen=True)
class CompiledModule(_CommonTables):
    self_module_handle_idx: int = 0
    struct_defs: Tuple[StructDefinition, ...] = ()
    struct_def_instantiations: Tuple[StructDefInstantiation, ...] = ()
    function_defs: Tuple[FunctionDefinition, ...] = ()
    field_handles: Tuple[FieldHandle, ...] = ()
    field_instantiations: Tuple[FieldInstantiation, ...] = ()
    friend_decls: Tuple[ModuleHandle, ...] = ()

    def self_handle(self) -> ModuleHandle:
        return self.module_handles[self.self_module_handle_idx]

    def self_id(self) -> ModuleId:
        return self.module_id_for_handle(self.self_handle())

    @property
    def name(self) -> str:
        return self.identifier_at(self.self_handle().name)

    @property
    def address(self) -> bytes:
        return self.address_at(self.self_handle().address)

    def immediate_dependencies(self) -> List[ModuleId]:
        """Modules referenced through module handles, self excluded, in handle order."""
        self_id = self.self_id()
        seen = set()
        out: List[ModuleId] = []
        for handle in self.module_handles:
            mid = self.module_id_for_handle(handle)
            if mid == self_id or mid in seen:
                continue
            seen.add(mid)
            out.append(mid)
        return out

    def friends(self) -> List[ModuleId]:
        return [self.module_id_for_handle(h) for h in self.friend_decls]


@dataclass(frozen=True)
class CompiledScript(_CommonTables):
    type_parameters: Tuple[int, ...] = ()
    parameters: int = 0
    code: CodeUnit = field(default_factory=lambda: CodeUnit(0))

    def immediate_dependencies(self) -> List[ModuleId]:
        seen = set()
        out: List[ModuleId] = []
        for handle in self.module_handles:
            mid = self.module_id_for_handle(handle)
            if mid in seen:
                continue
            seen.add(mid)
            out.append(mid)
        return out


__all__ = [
    "MAGIC",
    "VERSION_4",
    "VERSION_5",
    "VERSION_6",
    "VERSION_MIN",
    "VERSION_MAX",
    "TABLE_COUNT_MAX",
    "TABLE_INDEX_MAX",
    "SIGNATURE_SIZE_MAX",
    "FIELD_COUNT_MAX",
    "TYPE_PARAMETER_COUNT_MAX",
    "ACQUIRES_COUNT_MAX",
    "BYTECODE_COUNT_MAX",
    "IDENTIFIER_SIZE_MAX",
    "CONSTANT_SIZE_MAX",
    "METADATA_KEY_SIZE_MAX",
    "SIGNATURE_TOKEN_DEPTH_MAX",
    "TableType",
    "SerializedType",
    "Ability",
    "ability_names",
    "Visibility",
    "Opcode",
    "Operand",
    "operand_of",
    "ModuleHandle",
    "StructTypeParameter",
    "StructHandle",
    "FunctionHandle",
    "FieldHandle",
    "StructDefInstantiation",
    "FunctionInstantiation",
    "FieldInstantiation",
    "SignatureToken",
    "Signature",
    "Constant",
    "Metadata",
    "FieldDefinition",
    "StructDefinition",
    "Bytecode",
    "CodeUnit",
    "FunctionDefinition",
    "CompiledModule",
    "CompiledScript",
]
