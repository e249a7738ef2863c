import sys

import pytest

from shared.message import Message, ParseError, encode_message, parse_record


def test_parse_splits_on_first_space():
    message = parse_record(b'LOGIN {"username": "Alatreon", "note": "a b"}')

    assert message.command == "LOGIN"
    assert message.body == {"username": "Alatreon", "note": "a b"}
    assert message.get("username") == "Alatreon"


@pytest.mark.parametrize("record", [
    b"LOGIN",
    b"HELLO_WORLD",
    b'LOGIN {"username":',
    b"LOGIN not-json",
    b"LOGIN ",
    b'LOGIN {"username":"a"} trailing',
    b"LOGIN \xff\xfe",
    pytest.param(b"LOGIN " + b"[" * 100000 + b"]" * 100000, id="deep-nesting"),
    pytest.param(
        b"LOGIN " + b"1" * 5000,
        id="huge-integer",
        marks=pytest.mark.skipif(not hasattr(sys, "get_int_max_str_digits"), reason="no integer digit limit"),
    ),
])
def test_malformed_records_raise_parse_error(record):
    with pytest.raises(ParseError):
        parse_record(record)


def test_any_json_value_is_a_body():
    assert parse_record("LOGIN 5").body == 5
    assert parse_record("LOGIN null").body is None
    assert parse_record("LOGIN [1,2]").get("username") is None


def test_unknown_tokens_still_parse():
    message = parse_record("SAY {}")

    assert message.command == "SAY"
    assert message.body == {}


def test_encoding_is_compact_and_keeps_key_order():
    body = {"status": "ERROR", "code": 5001, "description": "Username has an invalid format or length"}

    assert encode_message("LOGIN_RESP", body) == (
        b'LOGIN_RESP {"status":"ERROR","code":5001,'
        b'"description":"Username has an invalid format or length"}\n'
    )


def test_encode_defaults_to_empty_body():
    assert encode_message("PARSE_ERROR") == b"PARSE_ERROR {}\n"
    assert Message("HI", {"version": "1.0.0"}).to_line() == 'HI {"version":"1.0.0"}'


def test_non_ascii_is_written_as_utf8():
    assert encode_message("JOINED", {"username": "Ålatreon"}) == 'JOINED {"username":"Ålatreon"}\n'.encode("utf-8")
