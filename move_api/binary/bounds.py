"""
Bounds checker for compiled units.

Every index stored in a table must land inside its target table, generic
instantiations must supply as many type arguments as the instantiated item
declares, type parameter references must be in scope, and definitions must
belong to the module that declares them. Nothing here looks at types beyond
arity; type safety is the verifier's job.
"""

from __future__ import annotations

from typing import Sequence, Union

from .errors import BinaryError, StatusCode
from .file_format import (
    CodeUnit,
    CompiledModule,
    CompiledScript,
    Operand,
    SerializedType,
    Signature,
    SignatureToken,
    operand_of,
)


def _check(idx: int, table: Sequence, what: str) -> None:
    if idx >= len(table):
        raise BinaryError(StatusCode.INDEX_OUT_OF_BOUNDS, f"{what} index {idx} out of bounds ({len(table)})")


class _BoundsChecker:
    def __init__(self, unit: Union[CompiledModule, CompiledScript]) -> None:
        self.unit = unit

    # -- common tables ------------------------------------------------------------

    def common(self) -> None:
        u = self.unit
        for mh in u.module_handles:
            self.module_handle(mh)
        for sh in u.struct_handles:
            _check(sh.module, u.module_handles, "module handle")
            _check(sh.name, u.identifiers, "identifier")
        for fh in u.function_handles:
            _check(fh.module, u.module_handles, "module handle")
            _check(fh.name, u.identifiers, "identifier")
            _check(fh.parameters, u.signatures, "signature")
            _check(fh.return_, u.signatures, "signature")
        # Signature pool entries are checked without a type-parameter scope;
        # the scoped checks happen where a signature is used.
        for sig in u.signatures:
            self.signature(sig, None)
        for fi in u.function_instantiations:
            _check(fi.handle, u.function_handles, "function handle")
            _check(fi.type_parameters, u.signatures, "signature")
            expected = len(u.function_handles[fi.handle].type_parameters)
            self.arity(fi.type_parameters, expected)
        for const in u.constant_pool:
            self.token(const.type_, 0)
        for fh in u.function_handles:
            scope = len(fh.type_parameters)
            self.signature(u.signatures[fh.parameters], scope)
            self.signature(u.signatures[fh.return_], scope)

    def module_handle(self, mh) -> None:
        _check(mh.address, self.unit.address_identifiers, "address")
        _check(mh.name, self.unit.identifiers, "identifier")

    def arity(self, sig_idx: int, expected: int) -> None:
        got = len(self.unit.signatures[sig_idx])
        if got != expected:
            raise BinaryError(
                StatusCode.NUMBER_OF_TYPE_ARGUMENTS_MISMATCH,
                f"expected {expected} type arguments, got {got}",
            )

    def signature(self, sig: Signature, scope) -> None:
        for tok in sig:
            self.token(tok, scope)

    def token(self, root: SignatureToken, scope) -> None:
        """`scope` is the number of type parameters in scope, or None for unscoped."""
        handles = self.unit.struct_handles
        for tok in root.walk():
            if tok.kind in (SerializedType.STRUCT, SerializedType.STRUCT_INST):
                _check(tok.index, handles, "struct handle")
                declared = len(handles[tok.index].type_parameters)
                if len(tok.args) != declared:
                    raise BinaryError(
                        StatusCode.NUMBER_OF_TYPE_ARGUMENTS_MISMATCH,
                        f"struct handle {tok.index} takes {declared} type arguments, got {len(tok.args)}",
                    )
            elif tok.kind is SerializedType.TYPE_PARAMETER and scope is not None and tok.index >= scope:
                raise BinaryError(
                    StatusCode.INDEX_OUT_OF_BOUNDS,
                    f"type parameter {tok.index} out of scope ({scope})",
                )

    # -- code ---------------------------------------------------------------------------

    def code(self, code: CodeUnit, params_sig: int, type_param_count: int) -> None:
        u = self.unit
        _check(code.locals, u.signatures, "signature")
        self.signature(u.signatures[code.locals], type_param_count)
        locals_count = len(u.signatures[params_sig]) + len(u.signatures[code.locals])
        is_module = isinstance(u, CompiledModule)
        for bc in code.code:
            kind = operand_of(bc.op)
            if kind is Operand.CODE_OFFSET:
                _check(bc.arg, code.code, "code offset")
            elif kind is Operand.LOCAL:
                if bc.arg >= locals_count:
                    raise BinaryError(StatusCode.INDEX_OUT_OF_BOUNDS, f"local {bc.arg} out of bounds")
            elif kind is Operand.CONSTANT:
                _check(bc.arg, u.constant_pool, "constant")
            elif kind is Operand.FUNCTION_HANDLE:
                _check(bc.arg, u.function_handles, "function handle")
            elif kind is Operand.FUNCTION_INST:
                _check(bc.arg, u.function_instantiations, "function instantiation")
                self.signature(u.signatures[u.function_instantiations[bc.arg].type_parameters], type_param_count)
            elif kind is Operand.SIGNATURE or kind is Operand.SIGNATURE_AND_COUNT:
                sig_idx = bc.arg[0] if kind is Operand.SIGNATURE_AND_COUNT else bc.arg
                _check(sig_idx, u.signatures, "signature")
                self.arity(sig_idx, 1)
                self.signature(u.signatures[sig_idx], type_param_count)
            elif kind in (Operand.FIELD_HANDLE, Operand.FIELD_INST, Operand.STRUCT_DEF, Operand.STRUCT_DEF_INST):
                if not is_module:
                    raise BinaryError(StatusCode.INDEX_OUT_OF_BOUNDS, f"{bc.op.name} has no target in a script")
                self.module_operand(kind, bc.arg, type_param_count)

    def module_operand(self, kind: Operand, idx: int, type_param_count: int) -> None:
        m = self.unit
        assert isinstance(m, CompiledModule)
        if kind is Operand.FIELD_HANDLE:
            _check(idx, m.field_handles, "field handle")
        elif kind is Operand.FIELD_INST:
            _check(idx, m.field_instantiations, "field instantiation")
            self.signature(m.signatures[m.field_instantiations[idx].type_parameters], type_param_count)
        elif kind is Operand.STRUCT_DEF:
            _check(idx, m.struct_defs, "struct definition")
        else:
            _check(idx, m.struct_def_instantiations, "struct instantiation")
            self.signature(m.signatures[m.struct_def_instantiations[idx].type_parameters], type_param_count)


def check_module_bounds(module: CompiledModule) -> None:
    c = _BoundsChecker(module)
    _check(module.self_module_handle_idx, module.module_handles, "self module handle")
    c.common()
    m = module
    for friend in m.friend_decls:
        c.module_handle(friend)

    for sdef in m.struct_defs:
        _check(sdef.struct_handle, m.struct_handles, "struct handle")
        handle = m.struct_handles[sdef.struct_handle]
        if handle.module != m.self_module_handle_idx:
            raise BinaryError(StatusCode.INVALID_MODULE_HANDLE, "struct defined for a foreign module")
        for fdef in sdef.fields or ():
            _check(fdef.name, m.identifiers, "identifier")
            c.token(fdef.signature, len(handle.type_parameters))

    for inst in m.struct_def_instantiations:
        _check(inst.def_, m.struct_defs, "struct definition")
        _check(inst.type_parameters, m.signatures, "signature")
        handle = m.struct_handles[m.struct_defs[inst.def_].struct_handle]
        c.arity(inst.type_parameters, len(handle.type_parameters))

    for fh in m.field_handles:
        _check(fh.owner, m.struct_defs, "struct definition")
        owner = m.struct_defs[fh.owner]
        if owner.fields is None:
            raise BinaryError(StatusCode.INDEX_OUT_OF_BOUNDS, "field handle on a native struct")
        _check(fh.field, owner.fields, "field")

    for inst in m.field_instantiations:
        _check(inst.handle, m.field_handles, "field handle")
        _check(inst.type_parameters, m.signatures, "signature")
        owner = m.struct_defs[m.field_handles[inst.handle].owner]
        c.arity(inst.type_parameters, len(m.struct_handles[owner.struct_handle].type_parameters))

    for fdef in m.function_defs:
        _check(fdef.function, m.function_handles, "function handle")
        handle = m.function_handles[fdef.function]
        if handle.module != m.self_module_handle_idx:
            raise BinaryError(StatusCode.INVALID_MODULE_HANDLE, "function defined for a foreign module")
        for acquired in fdef.acquires_global_resources:
            _check(acquired, m.struct_defs, "struct definition")
        if fdef.code is not None:
            c.code(fdef.code, handle.parameters, len(handle.type_parameters))


def check_script_bounds(script: CompiledScript) -> None:
    c = _BoundsChecker(script)
    c.common()
    _check(script.parameters, script.signatures, "signature")
    scope = len(script.type_parameters)
    c.signature(script.signatures[script.parameters], scope)
    c.code(script.code, script.parameters, scope)


def check_bounds(unit: Union[CompiledModule, CompiledScript]) -> None:
    if isinstance(unit, CompiledModule):
        check_module_bounds(unit)
    else:
        check_script_bounds(unit)


__all__ = ["check_bounds", "check_module_bounds", "check_script_bounds"]
