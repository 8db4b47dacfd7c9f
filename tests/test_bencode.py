import pytest

from pixelscrape.bencode import BencodeError, decode, decode_prefix, encode


def test_encode_integer():
    assert encode(42) == b"i42e"


def test_encode_string():
    assert encode(b"spam") == b"4:spam"


def test_encode_dict_sorts_keys():
    assert encode({"spam": b"eggs", "cow": b"moo"}) == b"d3:cow3:moo4:spam4:eggse"


def test_str_encodes_like_bytes():
    assert encode("spam") == encode(b"spam")


@pytest.mark.parametrize(
    "value",
    [
        0,
        -17,
        10**20,
        b"",
        b"\x00\xff binary",
        [],
        [1, b"two", [3]],
        {},
        {"a": 1, "b": [b"x", {"c": b"d"}]},
    ],
)
def test_round_trip(value):
    assert decode(encode(value)) == value


def test_tuple_encodes_as_list():
    assert decode(encode((1, 2))) == [1, 2]


def test_decode_prefix_reports_consumed():
    encoded = encode({"piece": 0})
    value, consumed = decode_prefix(encoded + b"rest")
    assert value == {"piece": 0}
    assert consumed == len(encoded)


def test_decode_rejects_trailing_data():
    with pytest.raises(BencodeError):
        decode(encode(1) + b"x")


@pytest.mark.parametrize(
    "bad",
    [b"", b"i", b"i12", b"i01e", b"i-0e", b"ie", b"5:abc", b"l", b"d", b"x", b"01:a", b"di1ei2ee"],
)
def test_decode_rejects_malformed(bad):
    with pytest.raises(BencodeError):
        decode(bad)


@pytest.mark.parametrize("value", [True, 1.5, None, {1: 2}, object()])
def test_encode_rejects_unsupported(value):
    with pytest.raises(BencodeError):
        encode(value)


def test_encode_rejects_duplicate_keys():
    with pytest.raises(BencodeError):
        encode({"a": 1, b"a": 2})


def test_deep_nesting_is_an_error():
    with pytest.raises(BencodeError):
        decode(b"l" * 100000 + b"e" * 100000)