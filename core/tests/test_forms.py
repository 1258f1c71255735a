"""Tests for parse_form_string."""

from agentflow.utils.forms import parse_form_string


def test_parses_key_value_lines():
    text = "name: John\nemail: john@example.com\nage: 30"
    assert parse_form_string(text) == {
        "name": "John",
        "email": "john@example.com",
        "age": "30",
    }


def test_skips_lines_without_colon():
    text = "name: John\ninvalid\nemail: john@example.com"
    assert parse_form_string(text) == {"name": "John", "email": "john@example.com"}


def test_only_first_colon_splits():
    assert parse_form_string("time: 10:30:00\nurl: http://x.io") == {
        "time": "10:30:00",
        "url": "http://x.io",
    }


def test_trims_whitespace():
    assert parse_form_string("   key   :   value   ") == {"key": "value"}


def test_skips_empty_key_or_value():
    text = ": no key\nno value:\n   :   \nvalid: yes"
    assert parse_form_string(text) == {"valid": "yes"}


def test_empty_input():
    assert parse_form_string("") == {}
    assert parse_form_string(None) == {}


def test_blank_lines_and_crlf():
    assert parse_form_string("a: 1\r\n\r\nb: 2\r\n") == {"a": "1", "b": "2"}


def test_later_duplicate_key_wins():
    assert parse_form_string("k: first\nk: second") == {"k": "second"}
