"""
Binary format reader: header, table directory, table bodies, trailer and the
version-specific encodings. Failures are asserted through `decode`, which is
how every caller sees them.
"""

from __future__ import annotations

import pytest

from move_api.binary import (
    Bytecode,
    CompiledModule,
    Metadata,
    Opcode,
    SerializedType,
    SignatureToken,
    Visibility,
    deserialize_module,
    serialize_module,
)
from move_api.config import DEFAULT_PROFILE, DeserializationProfile, get_preset
from move_api.decoder import decode, decode_module, decode_script
from move_api.errors import StructuralViolation, TruncatedInput, UnsupportedVersion
from move_api.identifiers import ModuleId

from .builders import (
    ADDR_1,
    ADDR_CAFE,
    EMPTY_MODULE_V6,
    RET,
    U8,
    U16,
    U64,
    ModuleBuilder,
    ScriptBuilder,
    coin_module,
    patch,
    with_version,
)


def _status(excinfo) -> str:
    return excinfo.value.data["status"]


# -- well-formed input --------------------------------------------------------


def test_hand_assembled_module():
    assert len(EMPTY_MODULE_V6) == 55
    m = decode_module(EMPTY_MODULE_V6)
    assert m.version == 6
    assert m.self_id() == ModuleId(ADDR_1, "M")
    assert str(m.self_id()) == "0x1::M"
    assert m.function_defs == () and m.struct_defs == ()
    assert m.immediate_dependencies() == []


def test_builder_matches_hand_assembled_bytes():
    assert ModuleBuilder(ADDR_1, "M").to_bytes() == EMPTY_MODULE_V6


@pytest.mark.parametrize("version", [5, 6])
def test_rich_module_round_trips(version):
    built = coin_module(version).build()
    blob = serialize_module(built)
    decoded = decode_module(blob)
    assert decoded == built
    assert serialize_module(decoded) == blob


def test_v4_module_has_no_trailer_and_encodes_entry_as_visibility():
    b = ModuleBuilder(ADDR_CAFE, "Old", version=4)
    b.function("run", visibility=Visibility.PUBLIC, entry=True)
    b.function("peek", visibility=Visibility.PUBLIC)
    blob = b.to_bytes()
    m = decode_module(blob)
    assert m.version == 4
    assert m.self_module_handle_idx == 0
    run, peek = m.function_defs
    assert (run.visibility, run.is_entry) == (Visibility.PUBLIC, True)
    assert (peek.visibility, peek.is_entry) == (Visibility.PUBLIC, False)
    # Same module at v5 carries one extra trailing byte: the self index.
    b5 = ModuleBuilder(ADDR_CAFE, "Old", version=5)
    b5.function("run", visibility=Visibility.PUBLIC, entry=True)
    b5.function("peek", visibility=Visibility.PUBLIC)
    assert len(b5.to_bytes()) == len(blob) + 1


def test_v5_metadata_table_is_read():
    b = ModuleBuilder(ADDR_1, "meta", version=5)
    b.metadata.append(Metadata(b"aptos::metadata_v1", b"\x00\x01"))
    m = decode_module(b.to_bytes())
    assert m.metadata == (Metadata(b"aptos::metadata_v1", b"\x00\x01"),)


def test_v6_types_and_opcodes():
    b = ModuleBuilder(ADDR_1, "wide")
    code = b.code(Bytecode(Opcode.LD_U16, 7), Bytecode(Opcode.CAST_U256), Bytecode(Opcode.POP), RET)
    b.function("f", params=[U16], code=code)
    m = decode_module(b.to_bytes())
    assert m.function_defs[0].code.code[0] == Bytecode(Opcode.LD_U16, 7)
    assert m.signatures[m.function_handles[0].parameters] == (U16,)


def test_script_round_trip():
    s = ScriptBuilder()
    s.module_handle(ADDR_1, "coin")
    s.type_parameters = (0x1,)
    s.params = (SignatureToken.reference(SignatureToken.prim(SerializedType.SIGNER)), U64)
    built = s.build()
    unit = decode_script(s.to_bytes())
    assert unit == built
    assert unit.immediate_dependencies() == [ModuleId(ADDR_1, "coin")]


def test_module_dependencies_skip_self_and_keep_handle_order():
    b = ModuleBuilder(ADDR_CAFE, "Pool", deps=[(ADDR_1, "coin"), (ADDR_CAFE, "Math")])
    b.depend_on(ADDR_1, "coin")
    m = decode_module(b.to_bytes())
    assert m.immediate_dependencies() == [ModuleId(ADDR_1, "coin"), ModuleId(ADDR_CAFE, "Math")]


def test_self_identifier_is_accepted_in_tables():
    b = ModuleBuilder(ADDR_1, "M")
    b.ident("<SELF>")
    assert "<SELF>" in decode_module(b.to_bytes()).identifiers


# -- header & directory -------------------------------------------------------


def test_bad_magic():
    with pytest.raises(StructuralViolation) as ei:
        decode(b"\xa1\x1c\xeb\x0c" + EMPTY_MODULE_V6[4:])
    assert _status(ei) == "BAD_MAGIC"


def test_foreign_first_byte_is_bad_magic_not_truncation():
    with pytest.raises(StructuralViolation):
        decode(b"\x00")


@pytest.mark.parametrize("version", [0, 1, 3, 7, 0xFFFFFFFF])
def test_unknown_versions(version):
    with pytest.raises(UnsupportedVersion) as ei:
        decode(with_version(EMPTY_MODULE_V6, version))
    assert ei.value.data == {"status": "UNKNOWN_VERSION", "kind": "module"}


def test_profile_narrows_versions():
    with pytest.raises(UnsupportedVersion):
        decode(EMPTY_MODULE_V6, get_preset("legacy"))
    v5 = ModuleBuilder(ADDR_1, "M", version=5).to_bytes()
    decode(v5, get_preset("legacy"))
    with pytest.raises(UnsupportedVersion):
        decode(v5, get_preset("strict"))


@pytest.mark.parametrize("cut", range(len(EMPTY_MODULE_V6)))
def test_every_truncation_is_reported_as_truncated(cut):
    with pytest.raises(TruncatedInput) as ei:
        decode(EMPTY_MODULE_V6[:cut])
    assert _status(ei) == "UNEXPECTED_EOF"


def _sample_script() -> bytes:
    s = ScriptBuilder()
    s.module_handle(ADDR_1, "coin")
    s.type_parameters = (0x1,)
    s.params = (SignatureToken.reference(SignatureToken.prim(SerializedType.SIGNER)), U64)
    return s.to_bytes()


@pytest.mark.parametrize(
    "kind,blob",
    [
        ("module", coin_module(5).to_bytes()),
        ("module", coin_module(6).to_bytes()),
        ("script", _sample_script()),
    ],
    ids=["coin-v5", "coin-v6", "script"],
)
def test_every_prefix_of_a_rich_unit_is_rejected(kind, blob):
    decode(blob, kind=kind)
    for cut in range(len(blob)):
        with pytest.raises((TruncatedInput, StructuralViolation)):
            decode(blob[:cut], kind=kind)


def test_trailing_bytes():
    with pytest.raises(StructuralViolation) as ei:
        decode(EMPTY_MODULE_V6 + b"\x00")
    assert _status(ei) == "TRAILING_BYTES"


@pytest.mark.parametrize(
    "offset,value,status",
    [
        (13, b"\x03", "BAD_HEADER_TABLE"),  # IDENTIFIERS offset leaves a gap
        (14, b"\x00", "BAD_HEADER_TABLE"),  # empty IDENTIFIERS table
        (12, b"\x01", "DUPLICATE_TABLE"),  # second MODULE_HANDLES
        (12, b"\x09", "UNKNOWN_TABLE_TYPE"),
        (9, b"\x00", "UNKNOWN_TABLE_TYPE"),
        (21, b"\x31", "INVALID_IDENTIFIER"),  # "1"
        (21, b"\xff", "MALFORMED"),  # not UTF-8
        (20, b"\x02", "MALFORMED"),  # identifier runs past its table
        (54, b"\x01", "INDEX_OUT_OF_BOUNDS"),  # self handle index
    ],
)
def test_corrupted_directory_and_tables(offset, value, status):
    with pytest.raises(StructuralViolation) as ei:
        decode(patch(EMPTY_MODULE_V6, offset, value))
    assert _status(ei) == status


def test_table_count_above_limit():
    # 256 as ULEB128 (80 02) exceeds the 255-table limit.
    blob = EMPTY_MODULE_V6[:8] + b"\x80\x02" + EMPTY_MODULE_V6[9:]
    with pytest.raises(StructuralViolation) as ei:
        decode(blob)
    assert _status(ei) == "BAD_ULEB"


def test_non_canonical_uleb_is_rejected():
    with pytest.raises(StructuralViolation) as ei:
        decode(EMPTY_MODULE_V6[:-1] + b"\x80\x00")
    assert _status(ei) == "BAD_ULEB"


def test_metadata_table_rejected_before_v5():
    b = ModuleBuilder(ADDR_1, "meta", version=5)
    b.metadata.append(Metadata(b"k", b"v"))
    with pytest.raises(StructuralViolation) as ei:
        decode(with_version(b.to_bytes(), 4))
    assert _status(ei) == "UNKNOWN_TABLE_TYPE"


def test_module_tables_rejected_in_script():
    with pytest.raises(StructuralViolation) as ei:
        decode(coin_module().to_bytes(), kind="script")
    assert _status(ei) == "MALFORMED"
    assert ei.value.data["kind"] == "script"


# -- table bodies -------------------------------------------------------------


def test_v6_type_rejected_at_v5():
    b = ModuleBuilder(ADDR_1, "wide")
    b.function("f", params=[U16])
    with pytest.raises(StructuralViolation) as ei:
        decode(with_version(b.to_bytes(), 5))
    assert _status(ei) == "UNKNOWN_SERIALIZED_TYPE"


def test_v6_opcode_rejected_at_v5():
    b = ModuleBuilder(ADDR_1, "wide")
    b.function("f", code=b.code(Bytecode(Opcode.CAST_U32), Bytecode(Opcode.POP), RET))
    with pytest.raises(StructuralViolation) as ei:
        decode(with_version(b.to_bytes(), 5))
    assert _status(ei) == "UNKNOWN_OPCODE"


def _with_marker(op: Opcode = Opcode.LD_U64):
    marker = 0x1122334455667788
    b = ModuleBuilder(ADDR_1, "ops")
    b.function("f", code=b.code(Bytecode(op, marker), Bytecode(Opcode.POP), RET))
    blob = b.to_bytes()
    return blob, blob.index(marker.to_bytes(8, "little")) - 1


def test_unknown_opcode():
    blob, at = _with_marker()
    with pytest.raises(StructuralViolation) as ei:
        decode(patch(blob, at, b"\xff"))
    assert _status(ei) == "UNKNOWN_OPCODE"


def test_unknown_ability_bits():
    b = ModuleBuilder(ADDR_1, "m")
    b.struct("S", [("x", U8)], abilities=0x10)
    with pytest.raises(StructuralViolation) as ei:
        decode(b.to_bytes())
    assert _status(ei) == "UNKNOWN_ABILITY"


def test_unknown_function_flag_bits():
    b = ModuleBuilder(ADDR_1, "m")
    b.function("f", native=True)
    blob = b.to_bytes()
    # function def: handle 0, visibility 0, flags 0x02 (native), 0 acquires
    at = blob.rindex(b"\x00\x00\x02\x00") + 2
    with pytest.raises(StructuralViolation) as ei:
        decode(patch(blob, at, b"\x0a"))
    assert _status(ei) == "INVALID_FLAG_BITS"


def test_deprecated_script_visibility_rejected_at_v5():
    b = ModuleBuilder(ADDR_1, "m", version=5)
    b.function("f", native=True)
    blob = b.to_bytes()
    at = blob.rindex(b"\x00\x00\x02\x00") + 1
    with pytest.raises(StructuralViolation) as ei:
        decode(patch(blob, at, b"\x02"))
    assert _status(ei) == "UNKNOWN_VISIBILITY"


def test_struct_instantiation_without_arguments():
    b = ModuleBuilder(ADDR_1, "m")
    s = b.struct("S", [("x", U8)])
    b.function("f", params=[SignatureToken(SerializedType.STRUCT_INST, s, ())])
    with pytest.raises(StructuralViolation) as ei:
        decode(b.to_bytes())
    assert _status(ei) == "MALFORMED"


def test_signature_depth_follows_profile():
    tok = U8
    for _ in range(80):
        tok = SignatureToken.vector(tok)
    b = ModuleBuilder(ADDR_1, "deep")
    b.function("f", params=[tok])
    blob = b.to_bytes()
    decode(blob)
    with pytest.raises(StructuralViolation) as ei:
        decode(blob, get_preset("strict"))
    assert _status(ei) == "LIMIT_EXCEEDED"


def test_binary_size_limit():
    tiny = DeserializationProfile(name="tiny", max_binary_size=54)
    with pytest.raises(StructuralViolation) as ei:
        decode(EMPTY_MODULE_V6, tiny)
    assert _status(ei) == "LIMIT_EXCEEDED"


def test_identifier_size_limit():
    b = ModuleBuilder(ADDR_1, "a" * 40)
    blob = b.to_bytes()
    decode(blob)
    with pytest.raises(StructuralViolation):
        decode(blob, DEFAULT_PROFILE.with_overrides(max_identifier_size=32))


def test_deserialize_module_accepts_bytearray():
    m = deserialize_module(bytearray(EMPTY_MODULE_V6), DEFAULT_PROFILE)
    assert isinstance(m, CompiledModule)


def test_decode_rejects_non_bytes():
    with pytest.raises(TypeError):
        decode("a11ceb0b")  # type: ignore[arg-type]
