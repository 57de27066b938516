"""
Builders for compiled units used across the test-suite.

Tables are interned as they are referenced, so a builder produces the same
layout a compiler would for the same declarations: the module's own handle is
always entry 0, dependencies follow in first-use order.

    b = ModuleBuilder(ADDR_CAFE, "Pool", deps=[(ADDR_1, "coin")])
    b.function("swap", params=[u64], visibility=Visibility.PUBLIC)
    blob = b.to_bytes()
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from move_api.binary import (
    Bytecode,
    CodeUnit,
    CompiledModule,
    CompiledScript,
    Constant,
    FieldDefinition,
    FunctionDefinition,
    FunctionHandle,
    Metadata,
    ModuleHandle,
    Opcode,
    SerializedType,
    SignatureToken,
    StructDefinition,
    StructHandle,
    StructTypeParameter,
    Visibility,
    serialize_module,
    serialize_script,
)
from move_api.identifiers import address_from_int

ADDR_1 = address_from_int(1)
ADDR_CAFE = address_from_int(0xCAFE)

BOOL = SignatureToken.prim(SerializedType.BOOL)
U8 = SignatureToken.prim(SerializedType.U8)
U16 = SignatureToken.prim(SerializedType.U16)
U64 = SignatureToken.prim(SerializedType.U64)
ADDRESS = SignatureToken.prim(SerializedType.ADDRESS)
SIGNER = SignatureToken.prim(SerializedType.SIGNER)

RET = Bytecode(Opcode.RET)

# Hand-assembled v6 module 0x1::M with no functions or structs.
EMPTY_MODULE_V6 = bytes.fromhex(
    "a11ceb0b"  # magic
    "06000000"  # version 6
    "03"  # three tables
    "010002"  # MODULE_HANDLES @0, 2 bytes
    "070202"  # IDENTIFIERS    @2, 2 bytes
    "080420"  # ADDRESS_IDENTIFIERS @4, 32 bytes
    "0000"  # handle {address: 0, name: 0}
    "014d"  # "M"
    + "00" * 31
    + "01"  # 0x1
    + "00"  # self module handle index
)


class _UnitBuilder:
    def __init__(self, version: int) -> None:
        self.version = version
        self.identifiers: List[str] = []
        self.addresses: List[bytes] = []
        self.module_handles: List[ModuleHandle] = []
        self.struct_handles: List[StructHandle] = []
        self.function_handles: List[FunctionHandle] = []
        self.signatures: List[Tuple[SignatureToken, ...]] = []
        self.constants: List[Constant] = []
        self.metadata: List[Metadata] = []

    @staticmethod
    def _intern(table: list, item) -> int:
        try:
            return table.index(item)
        except ValueError:
            table.append(item)
            return len(table) - 1

    def ident(self, name: str) -> int:
        return self._intern(self.identifiers, name)

    def addr(self, address: bytes) -> int:
        return self._intern(self.addresses, address)

    def module_handle(self, address: bytes, name: str) -> int:
        return self._intern(self.module_handles, ModuleHandle(self.addr(address), self.ident(name)))

    def signature(self, tokens: Iterable[SignatureToken] = ()) -> int:
        return self._intern(self.signatures, tuple(tokens))

    def foreign_struct(
        self,
        address: bytes,
        module: str,
        name: str,
        *,
        abilities: int = 0,
        type_params: Sequence[StructTypeParameter] = (),
    ) -> int:
        handle = StructHandle(self.module_handle(address, module), self.ident(name), abilities, tuple(type_params))
        return self._intern(self.struct_handles, handle)

    def constant(self, token: SignatureToken, data: bytes) -> int:
        return self._intern(self.constants, Constant(token, data))

    def code(self, *ops: Bytecode, locals_: Iterable[SignatureToken] = ()) -> CodeUnit:
        return CodeUnit(self.signature(locals_), tuple(ops) or (RET,))

    def _common(self) -> dict:
        return {
            "version": self.version,
            "module_handles": tuple(self.module_handles),
            "struct_handles": tuple(self.struct_handles),
            "function_handles": tuple(self.function_handles),
            "signatures": tuple(self.signatures),
            "identifiers": tuple(self.identifiers),
            "address_identifiers": tuple(self.addresses),
            "constant_pool": tuple(self.constants),
            "metadata": tuple(self.metadata),
        }


class ModuleBuilder(_UnitBuilder):
    def __init__(
        self,
        address: bytes,
        name: str,
        *,
        version: int = 6,
        deps: Iterable[Tuple[bytes, str]] = (),
    ) -> None:
        super().__init__(version)
        self.self_idx = self.module_handle(address, name)
        self.struct_defs: List[StructDefinition] = []
        self.function_defs: List[FunctionDefinition] = []
        self.friend_decls: List[ModuleHandle] = []
        for dep_address, dep_name in deps:
            self.module_handle(dep_address, dep_name)

    def depend_on(self, address: bytes, name: str) -> int:
        return self.module_handle(address, name)

    def friend(self, address: bytes, name: str) -> None:
        self.friend_decls.append(ModuleHandle(self.addr(address), self.ident(name)))

    def struct(
        self,
        name: str,
        fields: Optional[Sequence[Tuple[str, SignatureToken]]] = (),
        *,
        abilities: int = 0,
        type_params: Sequence[StructTypeParameter] = (),
    ) -> int:
        """Declare a struct; `fields=None` makes it native. Returns the struct handle index."""
        handle_idx = len(self.struct_handles)
        self.struct_handles.append(StructHandle(self.self_idx, self.ident(name), abilities, tuple(type_params)))
        defs = None
        if fields is not None:
            defs = tuple(FieldDefinition(self.ident(fname), tok) for fname, tok in fields)
        self.struct_defs.append(StructDefinition(handle_idx, defs))
        return handle_idx

    def function(
        self,
        name: str,
        *,
        params: Iterable[SignatureToken] = (),
        returns: Iterable[SignatureToken] = (),
        type_params: Iterable[int] = (),
        visibility: Visibility = Visibility.PRIVATE,
        entry: bool = False,
        native: bool = False,
        code: Optional[CodeUnit] = None,
    ) -> int:
        handle_idx = len(self.function_handles)
        self.function_handles.append(
            FunctionHandle(
                self.self_idx,
                self.ident(name),
                self.signature(params),
                self.signature(returns),
                tuple(type_params),
            )
        )
        if not native and code is None:
            code = self.code()
        self.function_defs.append(FunctionDefinition(handle_idx, visibility, entry, (), None if native else code))
        return handle_idx

    def build(self) -> CompiledModule:
        return CompiledModule(
            self_module_handle_idx=self.self_idx,
            struct_defs=tuple(self.struct_defs),
            function_defs=tuple(self.function_defs),
            friend_decls=tuple(self.friend_decls),
            **self._common(),
        )

    def to_bytes(self) -> bytes:
        return serialize_module(self.build())


class ScriptBuilder(_UnitBuilder):
    def __init__(self, *, version: int = 6) -> None:
        super().__init__(version)
        self.type_parameters: Tuple[int, ...] = ()
        self.params: Tuple[SignatureToken, ...] = ()
        self.body: Optional[CodeUnit] = None

    def build(self) -> CompiledScript:
        params = self.signature(self.params)
        body = self.body or self.code()
        return CompiledScript(
            type_parameters=self.type_parameters,
            parameters=params,
            code=body,
            **self._common(),
        )

    def to_bytes(self) -> bytes:
        return serialize_script(self.build())


def module_blob(address: bytes, name: str, deps: Iterable[Tuple[bytes, str]] = (), *, version: int = 6) -> bytes:
    """Smallest module with the given identity and dependency handles."""
    return ModuleBuilder(address, name, version=version, deps=deps).to_bytes()


def coin_module(version: int = 6) -> ModuleBuilder:
    """
    A small `0x1::coin` with a foreign struct, a phantom generic struct and
    every visibility flavour:

        struct Coin<phantom T> has store { value: u64 }
        struct CoinStore<phantom T> has key { coin: Coin<T>, frozen: bool }
        native struct Supply has key
        public fun value<T>(coin: &Coin<T>): u64
        public entry fun transfer<T>(from: &signer, to: address, amount: u64)
        friend fun mint<T: store>(amount: u64, name: 0x1::string::String): Coin<T>
        entry fun init(account: &signer)
        fun helper(x: &mut u64)
    """
    b = ModuleBuilder(ADDR_1, "coin", version=version)
    string = b.foreign_struct(ADDR_1, "string", "String", abilities=0x7)
    phantom = StructTypeParameter(0, True)
    coin = b.struct("Coin", [("value", U64)], abilities=0x4, type_params=[phantom])
    b.struct(
        "CoinStore",
        [("coin", SignatureToken.struct(coin, SignatureToken.type_param(0))), ("frozen", BOOL)],
        abilities=0x8,
        type_params=[phantom],
    )
    b.struct("Supply", None, abilities=0x8)
    coin_t = SignatureToken.struct(coin, SignatureToken.type_param(0))
    b.function(
        "value",
        params=[SignatureToken.reference(coin_t)],
        returns=[U64],
        type_params=[0],
        visibility=Visibility.PUBLIC,
    )
    b.function(
        "transfer",
        params=[SignatureToken.reference(SIGNER), ADDRESS, U64],
        type_params=[0],
        visibility=Visibility.PUBLIC,
        entry=True,
    )
    b.function(
        "mint",
        params=[U64, SignatureToken.struct(string)],
        returns=[coin_t],
        type_params=[0x4],
        visibility=Visibility.FRIEND,
        native=True,
    )
    b.function("init", params=[SignatureToken.reference(SIGNER)], entry=True)
    b.function("helper", params=[SignatureToken.reference(U64, mutable=True)])
    b.friend(ADDR_1, "aptos_coin")
    return b


def patch(blob: bytes, offset: int, value: bytes) -> bytes:
    return blob[:offset] + value + blob[offset + len(value) :]


def with_version(blob: bytes, version: int) -> bytes:
    return patch(blob, 4, version.to_bytes(4, "little"))


__all__ = [
    "ADDR_1",
    "ADDR_CAFE",
    "BOOL",
    "U8",
    "U16",
    "U64",
    "ADDRESS",
    "SIGNER",
    "RET",
    "EMPTY_MODULE_V6",
    "ModuleBuilder",
    "ScriptBuilder",
    "module_blob",
    "coin_module",
    "patch",
    "with_version",
]
