import pytest

from orbitdb.address import InvalidAddressError, is_valid, parse

REF_ADDR = "/orbitdb/bafyreieecvmpthaoyasxzhnew2d25uaebwldeokea2wigyq5wr4dwiaimi/first-database"


def test_parse_empty_address_raises():
    with pytest.raises(InvalidAddressError) as excinfo:
        parse("")
    assert "not a valid OrbitDB address" in str(excinfo.value)


def test_parse_address_successfully():
    result = parse(REF_ADDR)
    assert str(result.root) == "bafyreieecvmpthaoyasxzhnew2d25uaebwldeokea2wigyq5wr4dwiaimi"
    assert result.path == "first-database"
    assert str(result).startswith("/orbitdb")
    assert "bafy" in str(result)


def test_parse_round_trip():
    assert str(parse(REF_ADDR)) == REF_ADDR


def test_parse_without_name():
    result = parse("bafyreieecvmpthaoyasxzhnew2d25uaebwldeokea2wigyq5wr4dwiaimi")
    assert result.path == ""
    assert str(result) == "/orbitdb/bafyreieecvmpthaoyasxzhnew2d25uaebwldeokea2wigyq5wr4dwiaimi"


def test_is_valid_empty_string():
    assert is_valid("") is False


def test_is_valid_address():
    assert is_valid(REF_ADDR) is True


def test_is_valid_missing_orbitdb_prefix():
    assert is_valid("bafyreieecvmpthaoyasxzhnew2d25uaebwldeokea2wigyq5wr4dwiaimi/first-database") is True


def test_is_valid_missing_db_name():
    assert is_valid("bafyreieecvmpthaoyasxzhnew2d25uaebwldeokea2wigyq5wr4dwiaimi") is True


def test_is_valid_invalid_multihash():
    assert is_valid("/orbitdb/Qmdgwt7w4uBsw8LXduzCd18zfGXeTmBsiR8edQ1hSfzc/first-database") is False


def test_is_valid_v0_address():
    assert is_valid("/orbitdb/Qmc9PMho3LwTXSaUXJ8WjeBZyXesAwUofdkGeadFXsqMzW/first") is True


def test_plain_name_is_not_an_address():
    assert is_valid("first") is False
    with pytest.raises(ValueError):
        parse("first")