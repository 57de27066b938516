"""
CompiledModule / CompiledScript → bytes.

Inverse of the deserializer for versions 4..6. Tables are emitted in a fixed
order and only when non-empty, so a unit that was deserialized from canonical
compiler output serializes back to the same bytes. Test fixtures build their
blobs through it.
"""

from __future__ import annotations

from typing import Callable, List, Sequence, Tuple, TypeVar, Union

from .cursor import Writer
from .file_format import (
    FUNCTION_FLAG_ENTRY,
    FUNCTION_FLAG_NATIVE,
    MAGIC,
    STRUCT_FLAG_DECLARED,
    STRUCT_FLAG_NATIVE,
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
    Operand,
    SerializedType,
    SignatureToken,
    TableType,
    Visibility,
    operand_of,
)

T = TypeVar("T")

_FIXED_WIDTH = {
    Operand.U8: 1,
    Operand.LOCAL: 1,
    Operand.U16: 2,
    Operand.U32: 4,
    Operand.U64: 8,
    Operand.U128: 16,
    Operand.U256: 32,
}


class _UnitWriter:
    def __init__(self, version: int) -> None:
        if not (VERSION_MIN <= version <= VERSION_MAX):
            raise ValueError(f"cannot serialize binary format version {version}")
        self.version = version
        self.tables: List[Tuple[TableType, bytes]] = []

    def table(self, kind: TableType, items: Sequence[T], write: Callable[[Writer, T], None]) -> None:
        if not items:
            return
        w = Writer()
        for item in items:
            write(w, item)
        self.tables.append((kind, w.getvalue()))

    # -- entries -------------------------------------------------------------------

    @staticmethod
    def module_handle(w: Writer, h) -> None:
        w.write_uleb128(h.address)
        w.write_uleb128(h.name)

    @staticmethod
    def struct_handle(w: Writer, h) -> None:
        w.write_uleb128(h.module)
        w.write_uleb128(h.name)
        w.write_u8(h.abilities)
        w.write_uleb128(len(h.type_parameters))
        for tp in h.type_parameters:
            w.write_u8(tp.constraints)
            w.write_u8(1 if tp.is_phantom else 0)

    @staticmethod
    def function_handle(w: Writer, h) -> None:
        w.write_uleb128(h.module)
        w.write_uleb128(h.name)
        w.write_uleb128(h.parameters)
        w.write_uleb128(h.return_)
        w.write_uleb128(len(h.type_parameters))
        for abilities in h.type_parameters:
            w.write_u8(abilities)

    @staticmethod
    def field_handle(w: Writer, fh) -> None:
        w.write_uleb128(fh.owner)
        w.write_uleb128(fh.field)

    @staticmethod
    def index_pair(w: Writer, item) -> None:
        first, second = _pair(item)
        w.write_uleb128(first)
        w.write_uleb128(second)

    def token(self, w: Writer, tok: SignatureToken) -> None:
        if tok.kind in V6_TYPES and self.version < VERSION_6:
            raise ValueError(f"{tok.kind.name.lower()} requires version 6")
        w.write_u8(tok.kind)
        if tok.kind in (SerializedType.REFERENCE, SerializedType.MUTABLE_REFERENCE, SerializedType.VECTOR):
            self.token(w, tok.args[0])
        elif tok.kind is SerializedType.STRUCT:
            w.write_uleb128(tok.index)
        elif tok.kind is SerializedType.STRUCT_INST:
            w.write_uleb128(tok.index)
            w.write_uleb128(len(tok.args))
            for arg in tok.args:
                self.token(w, arg)
        elif tok.kind is SerializedType.TYPE_PARAMETER:
            w.write_uleb128(tok.index)

    def signature(self, w: Writer, sig) -> None:
        w.write_uleb128(len(sig))
        for tok in sig:
            self.token(w, tok)

    def constant(self, w: Writer, c) -> None:
        self.token(w, c.type_)
        w.write_uleb128(len(c.data))
        w.write_bytes(c.data)

    @staticmethod
    def metadata(w: Writer, m) -> None:
        w.write_uleb128(len(m.key))
        w.write_bytes(m.key)
        w.write_uleb128(len(m.value))
        w.write_bytes(m.value)

    @staticmethod
    def identifier(w: Writer, ident: str) -> None:
        raw = ident.encode("utf-8")
        w.write_uleb128(len(raw))
        w.write_bytes(raw)

    @staticmethod
    def address(w: Writer, addr: bytes) -> None:
        w.write_bytes(addr)

    def struct_def(self, w: Writer, sdef) -> None:
        w.write_uleb128(sdef.struct_handle)
        if sdef.fields is None:
            w.write_u8(STRUCT_FLAG_NATIVE)
            return
        w.write_u8(STRUCT_FLAG_DECLARED)
        w.write_uleb128(len(sdef.fields))
        for fld in sdef.fields:
            w.write_uleb128(fld.name)
            self.token(w, fld.signature)

    def function_def(self, w: Writer, fdef) -> None:
        w.write_uleb128(fdef.function)
        flags = FUNCTION_FLAG_NATIVE if fdef.code is None else 0
        if self.version < VERSION_5:
            if fdef.is_entry:
                if fdef.visibility is not Visibility.PUBLIC:
                    raise ValueError("before version 5 only public functions can be entry functions")
                w.write_u8(VISIBILITY_DEPRECATED_SCRIPT)
            else:
                w.write_u8(fdef.visibility)
        else:
            w.write_u8(fdef.visibility)
            if fdef.is_entry:
                flags |= FUNCTION_FLAG_ENTRY
        w.write_u8(flags)
        w.write_uleb128(len(fdef.acquires_global_resources))
        for idx in fdef.acquires_global_resources:
            w.write_uleb128(idx)
        if fdef.code is not None:
            self.code_unit(w, fdef.code)

    def code_unit(self, w: Writer, code: CodeUnit) -> None:
        w.write_uleb128(code.locals)
        w.write_uleb128(len(code.code))
        for bc in code.code:
            self.bytecode(w, bc)

    def bytecode(self, w: Writer, bc: Bytecode) -> None:
        if bc.op in V6_OPCODES and self.version < VERSION_6:
            raise ValueError(f"{bc.op.name} requires version 6")
        w.write_u8(bc.op)
        kind = operand_of(bc.op)
        if kind is Operand.NONE:
            return
        width = _FIXED_WIDTH.get(kind)
        if width is not None:
            w.write_int(bc.arg, width)
        elif kind is Operand.SIGNATURE_AND_COUNT:
            sig, count = bc.arg
            w.write_uleb128(sig)
            w.write_uleb128(count)
        else:
            w.write_uleb128(bc.arg)

    # -- assembly -------------------------------------------------------------------

    def common(self, u: Union[CompiledModule, CompiledScript]) -> None:
        self.table(TableType.MODULE_HANDLES, u.module_handles, self.module_handle)
        self.table(TableType.STRUCT_HANDLES, u.struct_handles, self.struct_handle)
        self.table(TableType.FUNCTION_HANDLES, u.function_handles, self.function_handle)
        self.table(TableType.FUNCTION_INST, u.function_instantiations, self.index_pair)
        self.table(TableType.SIGNATURES, u.signatures, self.signature)
        self.table(TableType.CONSTANT_POOL, u.constant_pool, self.constant)
        if u.metadata and self.version < VERSION_5:
            raise ValueError("metadata requires version 5")
        self.table(TableType.METADATA, u.metadata, self.metadata)
        self.table(TableType.IDENTIFIERS, u.identifiers, self.identifier)
        self.table(TableType.ADDRESS_IDENTIFIERS, u.address_identifiers, self.address)

    def finish(self, trailer: bytes) -> bytes:
        out = Writer()
        out.write_bytes(MAGIC)
        out.write_u32(self.version)
        out.write_uleb128(len(self.tables))
        offset = 0
        for kind, body in self.tables:
            out.write_u8(kind)
            out.write_uleb128(offset)
            out.write_uleb128(len(body))
            offset += len(body)
        for _, body in self.tables:
            out.write_bytes(body)
        out.write_bytes(trailer)
        return out.getvalue()


def _pair(item) -> Tuple[int, int]:
    # FunctionInstantiation / FieldInstantiation: (handle, type_parameters)
    # StructDefInstantiation: (def_, type_parameters)
    first = item.def_ if hasattr(item, "def_") else item.handle
    return first, item.type_parameters


def serialize_module(module: CompiledModule) -> bytes:
    uw = _UnitWriter(module.version)
    uw.common(module)
    uw.table(TableType.STRUCT_DEFS, module.struct_defs, uw.struct_def)
    uw.table(TableType.STRUCT_DEF_INST, module.struct_def_instantiations, uw.index_pair)
    uw.table(TableType.FUNCTION_DEFS, module.function_defs, uw.function_def)
    uw.table(TableType.FIELD_HANDLE, module.field_handles, uw.field_handle)
    uw.table(TableType.FIELD_INST, module.field_instantiations, uw.index_pair)
    uw.table(TableType.FRIEND_DECLS, module.friend_decls, uw.module_handle)
    trailer = Writer()
    if module.version >= VERSION_5:
        trailer.write_uleb128(module.self_module_handle_idx)
    elif module.self_module_handle_idx != 0:
        raise ValueError("before version 5 the self module handle must be index 0")
    return uw.finish(trailer.getvalue())


def serialize_script(script: CompiledScript) -> bytes:
    uw = _UnitWriter(script.version)
    uw.common(script)
    body = Writer()
    body.write_uleb128(len(script.type_parameters))
    for abilities in script.type_parameters:
        body.write_u8(abilities)
    body.write_uleb128(script.parameters)
    uw.code_unit(body, script.code)
    return uw.finish(body.getvalue())


__all__ = ["serialize_module", "serialize_script"]
