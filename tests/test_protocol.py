"""Tests for escaping, command building and response parsing."""

import pytest

from ts3query.exceptions import TS3ProtocolError
from ts3query.protocol import (
    Status,
    build_command,
    escape,
    parse_record,
    parse_response,
    parse_status,
    strip_empty_keys,
    unescape,
)


class TestEscape:
    def test_space(self):
        assert escape(" ") == "\\s"

    def test_pipe(self):
        assert escape("|") == "\\p"

    def test_backslash(self):
        assert escape("a\\b") == "a\\\\b"

    def test_slash(self):
        assert escape("a/b") == "a\\/b"

    def test_whitespace_controls(self):
        assert escape("\n\r\t\v\f") == "\\n\\r\\t\\v\\f"

    def test_backslash_escaped_before_others(self):
        # "\ " must not turn into "\\\s" then "\\\\s"
        assert escape("\\ ") == "\\\\\\s"

    def test_non_string_is_converted(self):
        assert escape(42) == "42"

    def test_plain_text_untouched(self):
        assert escape("serveradmin") == "serveradmin"


class TestUnescape:
    def test_space(self):
        assert unescape("hello\\sworld") == "hello world"

    def test_pipe(self):
        assert unescape("a\\pb") == "a|b"

    def test_all_sequences(self):
        assert unescape("\\s\\p\\n\\f\\r\\t\\v\\/\\\\") == " |\n\f\r\t\v/\\"

    def test_escaped_backslash_before_letter(self):
        # A literal backslash followed by "s", not a space
        assert unescape("\\\\s") == "\\s"

    def test_unknown_sequence_kept(self):
        assert unescape("\\x") == "\\x"

    def test_dangling_backslash_kept(self):
        assert unescape("abc\\") == "abc\\"

    @pytest.mark.parametrize(
        "text",
        [
            "",
            "Welcome to the server | enjoy",
            "C:\\path\\to\\file /with/slashes",
            "line one\nline two\r\n\ttabbed\v\f",
            "\\s is not a space",
            "ümlaut and 日本語",
        ],
    )
    def test_round_trip(self, text):
        assert unescape(escape(text)) == text


class TestBuildCommand:
    def test_verb_only(self):
        assert build_command("whoami") == "whoami"

    def test_params_in_insertion_order(self):
        assert build_command("clientmove", {"cid": 5, "clid": 12}) == "clientmove cid=5 clid=12"

    def test_values_are_escaped(self):
        assert (
            build_command("sendtextmessage", {"targetmode": 1, "msg": "hi there|you"})
            == "sendtextmessage targetmode=1 msg=hi\\sthere\\pyou"
        )

    def test_options_follow_params(self):
        assert build_command("clientlist", {"x": "1"}, ["uid", "away"]) == "clientlist x=1 -uid -away"

    def test_no_line_terminator(self):
        assert not build_command("version").endswith("\n")

    def test_verb_is_escaped(self):
        assert build_command("a b") == "a\\sb"


class TestParseRecord:
    def test_key_value(self):
        assert parse_record("clid=1 client_nickname=Foo\\sBar") == {"clid": "1", "client_nickname": "Foo Bar"}

    def test_flag(self):
        assert parse_record("flag") == {"flag": True}

    def test_value_split_at_first_equals(self):
        assert parse_record("msg=a=b") == {"msg": "a=b"}

    def test_empty_value(self):
        assert parse_record("client_description=") == {"client_description": ""}

    def test_double_space_leaves_empty_key(self):
        assert parse_record("a=1  b=2") == {"a": "1", "": True, "b": "2"}

    def test_line_breaks_separate_tokens(self):
        assert parse_record("a=1\nb=2") == {"a": "1", "b": "2"}


class TestParseResponse:
    def test_single_record(self):
        assert parse_response("key=1") == {"key": "1"}

    def test_multiple_records_keep_order(self):
        assert parse_response("a=1 b=2|a=3 b=4") == [{"a": "1", "b": "2"}, {"a": "3", "b": "4"}]

    def test_flag(self):
        assert parse_response("flag") == {"flag": True}

    def test_empty_is_none(self):
        assert parse_response("") is None

    def test_whitespace_only_is_none(self):
        assert parse_response("  \n") is None

    def test_surrounding_whitespace_stripped(self):
        assert parse_response("  key=1\n") == {"key": "1"}

    def test_escaped_pipe_is_not_a_separator(self):
        assert parse_response("msg=a\\pb") == {"msg": "a|b"}


class TestStripEmptyKeys:
    def test_record(self):
        assert strip_empty_keys({"a": "1", "": True}) == {"a": "1"}

    def test_list(self):
        assert strip_empty_keys([{"": True}, {"b": "2", "": True}]) == [{}, {"b": "2"}]

    def test_none(self):
        assert strip_empty_keys(None) is None


class TestParseStatus:
    def test_ok(self):
        assert parse_status(" id=0 msg=ok") == Status(0, "ok", None)

    def test_error_message_unescaped(self):
        status = parse_status("id=512 msg=invalid\\sclientID")
        assert status.id == 512
        assert status.msg == "invalid clientID"
        assert status.extra_msg is None

    def test_extra_message(self):
        status = parse_status("id=2568 msg=insufficient\\sclient\\spermissions extra_msg=missing\\sb_serverinstance")
        assert status.extra_msg == "missing b_serverinstance"

    def test_missing_id(self):
        with pytest.raises(TS3ProtocolError):
            parse_status("msg=ok")

    def test_non_numeric_id(self):
        with pytest.raises(TS3ProtocolError):
            parse_status("id=abc msg=ok")

    def test_flag_id(self):
        with pytest.raises(TS3ProtocolError):
            parse_status("id msg=ok")
