"""
move_api.binary.deserializer — bytes → CompiledModule / CompiledScript.

Decoding proceeds in fixed phases:

  1. size gate        : blob length against profile.max_binary_size
  2. header           : magic, version (profile range), table count
  3. table directory  : kind / offset / length per table, then `check_tables`
                        (sorted by offset, contiguous from 0, non-empty, unique)
  4. table bodies     : each table parsed through a cursor scoped to its bytes
  5. trailer          : v5+ module self handle index, or the script body
  6. trailing bytes   : anything left over is an error
  7. bounds           : `check_bounds` over every cross-table index

Every failure is a `BinaryError`. Running past the end of the blob reports
UNEXPECTED_EOF; running past the end of a table (whose length the directory
already declared) reports MALFORMED.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Dict, List, Optional, Tuple, TypeVar

from ..identifiers import SELF_IDENTIFIER, is_valid_identifier
from .bounds import check_module_bounds, check_script_bounds
from .cursor import U32_MAX, U64_MAX, Cursor
from .errors import BinaryError, StatusCode
from .file_format import (
    ABILITY_ALL,
    ACQUIRES_COUNT_MAX,
    ADDRESS_SIZE,
    BYTECODE_COUNT_MAX,
    BYTECODE_INDEX_MAX,
    CONSTANT_SIZE_MAX,
    FIELD_COUNT_MAX,
    FIELD_OFFSET_MAX,
    FUNCTION_FLAG_ENTRY,
    FUNCTION_FLAG_NATIVE,
    MAGIC,
    METADATA_KEY_SIZE_MAX,
    METADATA_VALUE_SIZE_MAX,
    MODULE_ONLY_TABLES,
    SIGNATURE_SIZE_MAX,
    STRUCT_FLAG_DECLARED,
    STRUCT_FLAG_NATIVE,
    TABLE_COUNT_MAX,
    TABLE_INDEX_MAX,
    TABLE_OFFSET_MAX,
    TABLE_SIZE_MAX,
    TYPE_PARAMETER_COUNT_MAX,
    TYPE_PARAMETER_INDEX_MAX,
    V6_OPCODES,
    V6_TYPES,
    VERSION_5,
    VERSION_6,
    VERSION_MAX,
    VERSION_MIN,
    VISIBILITY_DEPRECATED_SCRIPT,
    Bytecode,
    CodeUnit,
    CompiledModule,
    CompiledScript,
    Constant,
    FieldDefinition,
    FieldHandle,
    FieldInstantiation,
    FunctionDefinition,
    FunctionHandle,
    FunctionInstantiation,
    Metadata,
    ModuleHandle,
    Opcode,
    Operand,
    SerializedType,
    Signature,
    SignatureToken,
    StructDefInstantiation,
    StructDefinition,
    StructHandle,
    StructTypeParameter,
    TableType,
    Visibility,
    operand_of,
)

if TYPE_CHECKING:  # pragma: no cover
    from ..config import DeserializationProfile

T = TypeVar("T")


@dataclass(frozen=True)
class Table:
    kind: TableType
    offset: int
    count: int


@dataclass(frozen=True)
class _Header:
    version: int
    tables: Tuple[Table, ...]
    content_start: int
    content_len: int


# ---------------------------------------------------------------------------
# Header & table directory
# ---------------------------------------------------------------------------


def _check_binary(cursor: Cursor, profile: "DeserializationProfile") -> int:
    """Validate magic and version; return the version."""
    magic = cursor.read_bytes(min(len(MAGIC), cursor.remaining()))
    if magic != MAGIC[: len(magic)]:
        raise BinaryError(StatusCode.BAD_MAGIC, "bad magic")
    if len(magic) < len(MAGIC):
        raise BinaryError(StatusCode.UNEXPECTED_EOF, "blob ends inside magic")
    version = cursor.read_u32()
    if not (VERSION_MIN <= version <= VERSION_MAX) or not profile.accepts_version(version):
        raise BinaryError(StatusCode.UNKNOWN_VERSION, f"binary format version {version} not accepted")
    return version


def _read_table(cursor: Cursor) -> Table:
    kind = cursor.read_u8()
    try:
        table_type = TableType(kind)
    except ValueError:
        raise BinaryError(StatusCode.UNKNOWN_TABLE_TYPE, f"unknown table kind {kind:#x}") from None
    offset = cursor.read_uleb128(TABLE_OFFSET_MAX)
    count = cursor.read_uleb128(TABLE_SIZE_MAX)
    return Table(table_type, offset, count)


def check_tables(tables: List[Table]) -> int:
    """
    Tables must be non-empty, unique, and tile [0, end) with no gaps.

    Returns the total length of the table contents.
    """
    tables.sort(key=lambda t: t.offset)
    current = 0
    seen = set()
    for table in tables:
        if table.offset != current:
            raise BinaryError(StatusCode.BAD_HEADER_TABLE, f"table {table.kind.name} at unexpected offset")
        if table.count == 0:
            raise BinaryError(StatusCode.BAD_HEADER_TABLE, f"table {table.kind.name} is empty")
        current += table.count
        if current > U32_MAX:
            raise BinaryError(StatusCode.BAD_HEADER_TABLE, "table contents overflow")
        if table.kind in seen:
            raise BinaryError(StatusCode.DUPLICATE_TABLE, f"duplicate table {table.kind.name}")
        seen.add(table.kind)
    return current


def _read_header(
    binary: bytes, profile: "DeserializationProfile", *, script: bool
) -> _Header:
    if len(binary) > profile.max_binary_size:
        raise BinaryError(StatusCode.LIMIT_EXCEEDED, f"blob of {len(binary)} bytes exceeds profile limit")
    cursor = Cursor(binary)
    version = _check_binary(cursor, profile)
    table_count = cursor.read_uleb128(TABLE_COUNT_MAX)
    tables = [_read_table(cursor) for _ in range(table_count)]
    for table in tables:
        if table.kind is TableType.METADATA and version < VERSION_5:
            raise BinaryError(StatusCode.UNKNOWN_TABLE_TYPE, "metadata table requires version 5")
        if script and table.kind in MODULE_ONLY_TABLES:
            raise BinaryError(StatusCode.MALFORMED, f"table {table.kind.name} not allowed in a script")
    content_start = cursor.position()
    content_len = check_tables(tables)
    if content_len > profile.max_table_content_size:
        raise BinaryError(StatusCode.LIMIT_EXCEEDED, "table contents exceed profile limit")
    if content_start + content_len > len(binary):
        raise BinaryError(StatusCode.UNEXPECTED_EOF, "blob ends inside table contents")
    return _Header(version, tuple(tables), content_start, content_len)


# ---------------------------------------------------------------------------
# Table readers
# ---------------------------------------------------------------------------


class _TableReader:
    """Reads table bodies for one blob; carries version and profile limits."""

    def __init__(self, binary: bytes, header: _Header, profile: "DeserializationProfile") -> None:
        self.binary = binary
        self.header = header
        self.version = header.version
        self.profile = profile
        self.by_kind: Dict[TableType, Table] = {t.kind: t for t in header.tables}

    # -- generic ----------------------------------------------------------------

    def table(self, kind: TableType, load: Callable[[Cursor], T]) -> Tuple[T, ...]:
        table = self.by_kind.get(kind)
        if table is None:
            return ()
        cursor = Cursor(
            self.binary,
            self.header.content_start + table.offset,
            self.header.content_start + table.offset + table.count,
            eof_status=StatusCode.MALFORMED,
        )
        out: List[T] = []
        while not cursor.at_end():
            if len(out) > TABLE_INDEX_MAX:
                raise BinaryError(StatusCode.LIMIT_EXCEEDED, f"too many entries in {kind.name}")
            out.append(load(cursor))
        return tuple(out)

    @staticmethod
    def index(cursor: Cursor) -> int:
        return cursor.read_uleb128(TABLE_INDEX_MAX)

    # -- primitives ---------------------------------------------------------------

    def identifier(self, cursor: Cursor) -> str:
        size = cursor.read_uleb128(self.profile.max_identifier_size)
        raw = cursor.read_bytes(size)
        try:
            ident = raw.decode("utf-8")
        except UnicodeDecodeError:
            raise BinaryError(StatusCode.MALFORMED, "identifier is not valid UTF-8") from None
        if ident != SELF_IDENTIFIER and not is_valid_identifier(ident):
            raise BinaryError(StatusCode.INVALID_IDENTIFIER, f"invalid identifier {ident!r}")
        return ident

    @staticmethod
    def address(cursor: Cursor) -> bytes:
        return cursor.read_bytes(ADDRESS_SIZE)

    @staticmethod
    def ability_set(cursor: Cursor) -> int:
        mask = cursor.read_u8()
        if mask & ~ABILITY_ALL:
            raise BinaryError(StatusCode.UNKNOWN_ABILITY, f"unknown ability bits {mask:#x}")
        return mask

    def ability_sets(self, cursor: Cursor) -> Tuple[int, ...]:
        count = cursor.read_uleb128(TYPE_PARAMETER_COUNT_MAX)
        return tuple(self.ability_set(cursor) for _ in range(count))

    # -- handles ------------------------------------------------------------------

    def module_handle(self, cursor: Cursor) -> ModuleHandle:
        return ModuleHandle(address=self.index(cursor), name=self.index(cursor))

    def struct_handle(self, cursor: Cursor) -> StructHandle:
        module = self.index(cursor)
        name = self.index(cursor)
        abilities = self.ability_set(cursor)
        count = cursor.read_uleb128(TYPE_PARAMETER_COUNT_MAX)
        params = []
        for _ in range(count):
            constraints = self.ability_set(cursor)
            phantom = cursor.read_u8()
            if phantom > 1:
                raise BinaryError(StatusCode.MALFORMED, "invalid phantom flag")
            params.append(StructTypeParameter(constraints, bool(phantom)))
        return StructHandle(module, name, abilities, tuple(params))

    def function_handle(self, cursor: Cursor) -> FunctionHandle:
        module = self.index(cursor)
        name = self.index(cursor)
        parameters = self.index(cursor)
        return_ = self.index(cursor)
        return FunctionHandle(module, name, parameters, return_, self.ability_sets(cursor))

    def field_handle(self, cursor: Cursor) -> FieldHandle:
        owner = self.index(cursor)
        return FieldHandle(owner, cursor.read_uleb128(FIELD_OFFSET_MAX))

    def function_inst(self, cursor: Cursor) -> FunctionInstantiation:
        return FunctionInstantiation(self.index(cursor), self.index(cursor))

    def struct_def_inst(self, cursor: Cursor) -> StructDefInstantiation:
        return StructDefInstantiation(self.index(cursor), self.index(cursor))

    def field_inst(self, cursor: Cursor) -> FieldInstantiation:
        return FieldInstantiation(self.index(cursor), self.index(cursor))

    # -- signatures -----------------------------------------------------------------

    def signature(self, cursor: Cursor) -> Signature:
        count = cursor.read_uleb128(SIGNATURE_SIZE_MAX)
        return tuple(self.token(cursor) for _ in range(count))

    def token(self, cursor: Cursor, depth: int = 1) -> SignatureToken:
        if depth > self.profile.max_signature_depth:
            raise BinaryError(StatusCode.LIMIT_EXCEEDED, "signature token nesting too deep")
        byte = cursor.read_u8()
        try:
            kind = SerializedType(byte)
        except ValueError:
            raise BinaryError(StatusCode.UNKNOWN_SERIALIZED_TYPE, f"unknown type byte {byte:#x}") from None
        if kind in V6_TYPES and self.version < VERSION_6:
            raise BinaryError(StatusCode.UNKNOWN_SERIALIZED_TYPE, f"{kind.name.lower()} requires version 6")
        if kind in (SerializedType.REFERENCE, SerializedType.MUTABLE_REFERENCE, SerializedType.VECTOR):
            return SignatureToken(kind, 0, (self.token(cursor, depth + 1),))
        if kind is SerializedType.STRUCT:
            return SignatureToken(kind, self.index(cursor))
        if kind is SerializedType.STRUCT_INST:
            handle = self.index(cursor)
            arity = cursor.read_uleb128(SIGNATURE_SIZE_MAX)
            if arity == 0:
                raise BinaryError(StatusCode.MALFORMED, "struct instantiation with no type arguments")
            args = tuple(self.token(cursor, depth + 1) for _ in range(arity))
            return SignatureToken(kind, handle, args)
        if kind is SerializedType.TYPE_PARAMETER:
            return SignatureToken(kind, cursor.read_uleb128(TYPE_PARAMETER_INDEX_MAX))
        return SignatureToken(kind)

    # -- pools ----------------------------------------------------------------------

    def constant(self, cursor: Cursor) -> Constant:
        type_ = self.token(cursor)
        size = cursor.read_uleb128(CONSTANT_SIZE_MAX)
        return Constant(type_, cursor.read_bytes(size))

    @staticmethod
    def metadata(cursor: Cursor) -> Metadata:
        key = cursor.read_bytes(cursor.read_uleb128(METADATA_KEY_SIZE_MAX))
        value = cursor.read_bytes(cursor.read_uleb128(METADATA_VALUE_SIZE_MAX))
        return Metadata(key, value)

    # -- definitions -------------------------------------------------------------------

    def struct_def(self, cursor: Cursor) -> StructDefinition:
        handle = self.index(cursor)
        flag = cursor.read_u8()
        if flag == STRUCT_FLAG_NATIVE:
            return StructDefinition(handle, None)
        if flag != STRUCT_FLAG_DECLARED:
            raise BinaryError(StatusCode.UNKNOWN_NATIVE_STRUCT_FLAG, f"struct flag {flag:#x}")
        count = cursor.read_uleb128(FIELD_COUNT_MAX)
        fields = tuple(FieldDefinition(self.index(cursor), self.token(cursor)) for _ in range(count))
        return StructDefinition(handle, fields)

    def function_def(self, cursor: Cursor) -> FunctionDefinition:
        function = self.index(cursor)
        raw_vis = cursor.read_u8()
        flags = cursor.read_u8()
        if self.version < VERSION_5:
            if raw_vis == VISIBILITY_DEPRECATED_SCRIPT:
                visibility, is_entry = Visibility.PUBLIC, True
            else:
                visibility, is_entry = self._visibility(raw_vis), False
        else:
            visibility = self._visibility(raw_vis)
            is_entry = bool(flags & FUNCTION_FLAG_ENTRY)
            flags &= ~FUNCTION_FLAG_ENTRY
        count = cursor.read_uleb128(ACQUIRES_COUNT_MAX)
        acquires = tuple(self.index(cursor) for _ in range(count))
        code: Optional[CodeUnit] = None
        if flags & FUNCTION_FLAG_NATIVE:
            flags &= ~FUNCTION_FLAG_NATIVE
        else:
            code = self.code_unit(cursor)
        if flags:
            raise BinaryError(StatusCode.INVALID_FLAG_BITS, f"unknown function flags {flags:#x}")
        return FunctionDefinition(function, visibility, is_entry, acquires, code)

    @staticmethod
    def _visibility(raw: int) -> Visibility:
        try:
            return Visibility(raw)
        except ValueError:
            raise BinaryError(StatusCode.UNKNOWN_VISIBILITY, f"visibility byte {raw:#x}") from None

    def code_unit(self, cursor: Cursor) -> CodeUnit:
        locals_ = self.index(cursor)
        count = cursor.read_uleb128(BYTECODE_COUNT_MAX)
        return CodeUnit(locals_, tuple(self.bytecode(cursor) for _ in range(count)))

    def bytecode(self, cursor: Cursor) -> Bytecode:
        byte = cursor.read_u8()
        try:
            op = Opcode(byte)
        except ValueError:
            raise BinaryError(StatusCode.UNKNOWN_OPCODE, f"unknown opcode {byte:#x}") from None
        if op in V6_OPCODES and self.version < VERSION_6:
            raise BinaryError(StatusCode.UNKNOWN_OPCODE, f"{op.name} requires version 6")
        kind = operand_of(op)
        if kind is Operand.NONE:
            return Bytecode(op)
        if kind is Operand.U8 or kind is Operand.LOCAL:
            return Bytecode(op, cursor.read_u8())
        if kind is Operand.U16:
            return Bytecode(op, cursor.read_u16())
        if kind is Operand.U32:
            return Bytecode(op, cursor.read_u32())
        if kind is Operand.U64:
            return Bytecode(op, cursor.read_u64())
        if kind is Operand.U128:
            return Bytecode(op, cursor.read_u128())
        if kind is Operand.U256:
            return Bytecode(op, cursor.read_u256())
        if kind is Operand.CODE_OFFSET:
            return Bytecode(op, cursor.read_uleb128(BYTECODE_INDEX_MAX))
        if kind is Operand.SIGNATURE_AND_COUNT:
            return Bytecode(op, (self.index(cursor), cursor.read_uleb128(U64_MAX)))
        return Bytecode(op, self.index(cursor))

    # -- assembly ------------------------------------------------------------------------

    def common(self) -> Dict[str, tuple]:
        return {
            "module_handles": self.table(TableType.MODULE_HANDLES, self.module_handle),
            "struct_handles": self.table(TableType.STRUCT_HANDLES, self.struct_handle),
            "function_handles": self.table(TableType.FUNCTION_HANDLES, self.function_handle),
            "function_instantiations": self.table(TableType.FUNCTION_INST, self.function_inst),
            "signatures": self.table(TableType.SIGNATURES, self.signature),
            "identifiers": self.table(TableType.IDENTIFIERS, self.identifier),
            "address_identifiers": self.table(TableType.ADDRESS_IDENTIFIERS, self.address),
            "constant_pool": self.table(TableType.CONSTANT_POOL, self.constant),
            "metadata": self.table(TableType.METADATA, self.metadata),
        }


def _finish(cursor: Cursor) -> None:
    if not cursor.at_end():
        raise BinaryError(StatusCode.TRAILING_BYTES, f"{cursor.remaining()} trailing bytes")


# ---------------------------------------------------------------------------
# Public entry points
# ---------------------------------------------------------------------------


def deserialize_module(binary: bytes, profile: "DeserializationProfile") -> CompiledModule:
    binary = bytes(binary)
    header = _read_header(binary, profile, script=False)
    reader = _TableReader(binary, header, profile)
    common = reader.common()
    cursor = Cursor(binary, header.content_start + header.content_len)
    self_idx = 0
    if header.version >= VERSION_5:
        self_idx = cursor.read_uleb128(TABLE_INDEX_MAX)
    _finish(cursor)
    module = CompiledModule(
        version=header.version,
        self_module_handle_idx=self_idx,
        struct_defs=reader.table(TableType.STRUCT_DEFS, reader.struct_def),
        struct_def_instantiations=reader.table(TableType.STRUCT_DEF_INST, reader.struct_def_inst),
        function_defs=reader.table(TableType.FUNCTION_DEFS, reader.function_def),
        field_handles=reader.table(TableType.FIELD_HANDLE, reader.field_handle),
        field_instantiations=reader.table(TableType.FIELD_INST, reader.field_inst),
        friend_decls=reader.table(TableType.FRIEND_DECLS, reader.module_handle),
        **common,
    )
    check_module_bounds(module)
    return module


def deserialize_script(binary: bytes, profile: "DeserializationProfile") -> CompiledScript:
    binary = bytes(binary)
    header = _read_header(binary, profile, script=True)
    reader = _TableReader(binary, header, profile)
    common = reader.common()
    # The script body follows the tables and is read at blob level.
    body = Cursor(binary, header.content_start + header.content_len)
    type_parameters = reader.ability_sets(body)
    parameters = reader.index(body)
    code = reader.code_unit(body)
    _finish(body)
    script = CompiledScript(
        version=header.version,
        type_parameters=type_parameters,
        parameters=parameters,
        code=code,
        **common,
    )
    check_script_bounds(script)
    return script


def read_module_self_id(binary: bytes, profile: "DeserializationProfile") -> Tuple[bytes, str]:
    """
    Resolve (address, name) of a module reading only the module handle,
    identifier and address tables plus the trailing self index.

    Other tables are located through the directory but never parsed, so a blob
    whose unread tables are malformed may still yield an identity here.
    """
    binary = bytes(binary)
    header = _read_header(binary, profile, script=False)
    reader = _TableReader(binary, header, profile)
    self_idx = 0
    if header.version >= VERSION_5:
        trailer = Cursor(binary, header.content_start + header.content_len)
        self_idx = trailer.read_uleb128(TABLE_INDEX_MAX)
        _finish(trailer)
    handles = reader.table(TableType.MODULE_HANDLES, reader.module_handle)
    if self_idx >= len(handles):
        raise BinaryError(StatusCode.INDEX_OUT_OF_BOUNDS, "self module handle out of bounds")
    handle = handles[self_idx]
    identifiers = reader.table(TableType.IDENTIFIERS, reader.identifier)
    addresses = reader.table(TableType.ADDRESS_IDENTIFIERS, reader.address)
    if handle.name >= len(identifiers) or handle.address >= len(addresses):
        raise BinaryError(StatusCode.INDEX_OUT_OF_BOUNDS, "self module handle references missing entries")
    return addresses[handle.address], identifiers[handle.name]


__all__ = [
    "Table",
    "check_tables",
    "deserialize_module",
    "deserialize_script",
    "read_module_self_id",
]
