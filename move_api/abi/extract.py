"""
Compiled unit → ABI summary.

Type rendering:
    bool u8 u16 u32 u64 u128 u256 address signer
    vector<T>   &T   &mut T   T<idx>   0x1::module::Name<A, B>

A module exposes its public and friend functions plus private entry functions;
a script is summarized as a single public entry function named `main`.
"""

from __future__ import annotations

from typing import List, Union

from ..binary import (
    CompiledModule,
    CompiledScript,
    FunctionDefinition,
    SerializedType,
    SignatureToken,
    Visibility,
    ability_names,
)
from ..errors import UnsupportedConstruct
from ..identifiers import address_to_hex_literal
from .types import (
    AbiSummary,
    FunctionTypeParam,
    MoveFunctionAbi,
    MoveModuleAbi,
    MoveStructAbi,
    MoveStructField,
    StructTypeParam,
)

_Unit = Union[CompiledModule, CompiledScript]

_PRIMITIVE_NAMES = {
    SerializedType.BOOL: "bool",
    SerializedType.U8: "u8",
    SerializedType.U16: "u16",
    SerializedType.U32: "u32",
    SerializedType.U64: "u64",
    SerializedType.U128: "u128",
    SerializedType.U256: "u256",
    SerializedType.ADDRESS: "address",
    SerializedType.SIGNER: "signer",
}

_VISIBILITY_NAMES = {
    Visibility.PRIVATE: "private",
    Visibility.PUBLIC: "public",
    Visibility.FRIEND: "friend",
}


def render_type(unit: _Unit, tok: SignatureToken) -> str:
    kind = tok.kind
    name = _PRIMITIVE_NAMES.get(kind)
    if name is not None:
        return name
    if kind is SerializedType.VECTOR:
        return f"vector<{render_type(unit, tok.args[0])}>"
    if kind is SerializedType.REFERENCE:
        return f"&{render_type(unit, tok.args[0])}"
    if kind is SerializedType.MUTABLE_REFERENCE:
        return f"&mut {render_type(unit, tok.args[0])}"
    if kind is SerializedType.TYPE_PARAMETER:
        return f"T{tok.index}"
    if kind in (SerializedType.STRUCT, SerializedType.STRUCT_INST):
        mid = unit.struct_module_id(tok.index)
        head = f"{mid}::{unit.struct_name(tok.index)}"
        if tok.args:
            head += "<" + ", ".join(render_type(unit, a) for a in tok.args) + ">"
        return head
    raise UnsupportedConstruct(f"cannot render signature token {kind!r}", kind=int(kind))


def _visibility(vis: Visibility) -> str:
    try:
        return _VISIBILITY_NAMES[vis]
    except KeyError:
        raise UnsupportedConstruct("unknown function visibility", visibility=int(vis)) from None


def _is_exposed(fdef: FunctionDefinition) -> bool:
    return fdef.visibility in (Visibility.PUBLIC, Visibility.FRIEND) or fdef.is_entry


def _function_abi(module: CompiledModule, fdef: FunctionDefinition) -> MoveFunctionAbi:
    handle = module.function_handles[fdef.function]
    return MoveFunctionAbi(
        name=module.identifier_at(handle.name),
        visibility=_visibility(fdef.visibility),
        is_entry=fdef.is_entry,
        generic_type_params=tuple(
            FunctionTypeParam(tuple(ability_names(c))) for c in handle.type_parameters
        ),
        params=tuple(render_type(module, t) for t in module.signature_at(handle.parameters)),
        return_=tuple(render_type(module, t) for t in module.signature_at(handle.return_)),
    )


def _struct_abi(module: CompiledModule, idx: int) -> MoveStructAbi:
    sdef = module.struct_defs[idx]
    handle = module.struct_handles[sdef.struct_handle]
    fields: List[MoveStructField] = [
        MoveStructField(module.identifier_at(f.name), render_type(module, f.signature))
        for f in sdef.fields or ()
    ]
    return MoveStructAbi(
        name=module.identifier_at(handle.name),
        is_native=sdef.is_native,
        abilities=tuple(ability_names(handle.abilities)),
        generic_type_params=tuple(
            StructTypeParam(tuple(ability_names(p.constraints)), p.is_phantom)
            for p in handle.type_parameters
        ),
        fields=tuple(fields),
    )


def module_abi(module: CompiledModule) -> MoveModuleAbi:
    return MoveModuleAbi(
        address=address_to_hex_literal(module.address),
        name=module.name,
        friends=tuple(str(f) for f in module.friends()),
        exposed_functions=tuple(
            _function_abi(module, fdef) for fdef in module.function_defs if _is_exposed(fdef)
        ),
        structs=tuple(_struct_abi(module, i) for i in range(len(module.struct_defs))),
    )


def script_abi(script: CompiledScript) -> MoveFunctionAbi:
    return MoveFunctionAbi(
        name="main",
        visibility="public",
        is_entry=True,
        generic_type_params=tuple(FunctionTypeParam(tuple(ability_names(c))) for c in script.type_parameters),
        params=tuple(render_type(script, t) for t in script.signature_at(script.parameters)),
        return_=(),
    )


def extract_abi(unit: _Unit) -> AbiSummary:
    if isinstance(unit, CompiledModule):
        return module_abi(unit)
    if isinstance(unit, CompiledScript):
        return script_abi(unit)
    raise UnsupportedConstruct(f"not a compiled unit: {type(unit).__name__}")


__all__ = ["extract_abi", "module_abi", "script_abi", "render_type"]
