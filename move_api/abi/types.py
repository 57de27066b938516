"""
ABI summary value types.

Immutable projections of a compiled unit's public surface. `to_dict()` yields
the JSON shape consumed by node APIs and SDKs:

    module   {address, name, friends, exposed_functions, structs}
    function {name, visibility, is_entry, generic_type_params, params, return}
    struct   {name, is_native, abilities, generic_type_params, fields}

Lists keep declaration order.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Tuple, Union


@dataclass(frozen=True)
class FunctionTypeParam:
    constraints: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {"constraints": list(self.constraints)}


@dataclass(frozen=True)
class StructTypeParam:
    constraints: Tuple[str, ...] = ()
    is_phantom: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {"constraints": list(self.constraints), "is_phantom": self.is_phantom}


@dataclass(frozen=True)
class MoveStructField:
    name: str
    type: str

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "type": self.type}


@dataclass(frozen=True)
class MoveStructAbi:
    name: str
    is_native: bool
    abilities: Tuple[str, ...]
    generic_type_params: Tuple[StructTypeParam, ...]
    fields: Tuple[MoveStructField, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "is_native": self.is_native,
            "abilities": list(self.abilities),
            "generic_type_params": [p.to_dict() for p in self.generic_type_params],
            "fields": [f.to_dict() for f in self.fields],
        }


@dataclass(frozen=True)
class MoveFunctionAbi:
    name: str
    visibility: str
    is_entry: bool
    generic_type_params: Tuple[FunctionTypeParam, ...]
    params: Tuple[str, ...]
    return_: Tuple[str, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "visibility": self.visibility,
            "is_entry": self.is_entry,
            "generic_type_params": [p.to_dict() for p in self.generic_type_params],
            "params": list(self.params),
            "return": list(self.return_),
        }


@dataclass(frozen=True)
class MoveModuleAbi:
    address: str
    name: str
    friends: Tuple[str, ...]
    exposed_functions: Tuple[MoveFunctionAbi, ...]
    structs: Tuple[MoveStructAbi, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "name": self.name,
            "friends": list(self.friends),
            "exposed_functions": [f.to_dict() for f in self.exposed_functions],
            "structs": [s.to_dict() for s in self.structs],
        }

    def function(self, name: str) -> MoveFunctionAbi:
        for fn in self.exposed_functions:
            if fn.name == name:
                return fn
        raise KeyError(name)

    def struct(self, name: str) -> MoveStructAbi:
        for st in self.structs:
            if st.name == name:
                return st
        raise KeyError(name)


AbiSummary = Union[MoveModuleAbi, MoveFunctionAbi]

__all__ = [
    "FunctionTypeParam",
    "StructTypeParam",
    "MoveStructField",
    "MoveStructAbi",
    "MoveFunctionAbi",
    "MoveModuleAbi",
    "AbiSummary",
]
