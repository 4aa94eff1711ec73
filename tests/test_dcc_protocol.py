"""
Tests for DCC offer formatting and parsing
"""

import pytest

from ircore.dcc import DCCRequestType, build_dcc_send, parse_dcc_request
from ircore.dcc.protocol import int_to_ip, ip_to_int, split_file_name
from ircore.errors import ParsingError


class TestAddresses:
    def test_ip_to_int(self):
        assert ip_to_int("127.0.0.1") == 2130706433
        assert ip_to_int("192.168.1.10") == 3232235786

    def test_int_to_ip_accepts_both_forms(self):
        assert int_to_ip("2130706433") == "127.0.0.1"
        assert int_to_ip(3232235786) == "192.168.1.10"
        assert int_to_ip("10.0.0.5") == "10.0.0.5"

    @pytest.mark.parametrize("value", ["not-an-ip", "99999999999", "1.2.3"])
    def test_invalid_addresses(self, value):
        with pytest.raises(ParsingError):
            int_to_ip(value)

    def test_ip_to_int_rejects_hostnames(self):
        with pytest.raises(ParsingError):
            ip_to_int("localhost")


class TestBuild:
    def test_send_offer(self):
        assert build_dcc_send("file.zip", "127.0.0.1", 5000, 1024) == (
            "\x01DCC SEND file.zip 2130706433 5000 1024\x01"
        )

    def test_send_offer_quotes_spaces_and_token(self):
        assert build_dcc_send("my file.zip", "10.0.0.1", 0, 10, "77") == (
            '\x01DCC SEND "my file.zip" 167772161 0 10 77\x01'
        )


class TestParse:
    def test_send_offer(self):
        request = parse_dcc_request("bob", "alice", "\x01DCC SEND file.zip 2130706433 5000 1024\x01")
        assert request.type is DCCRequestType.SEND
        assert request.sender == "bob"
        assert request.target == "alice"
        assert request.file_name == "file.zip"
        assert request.address == "127.0.0.1"
        assert request.port == 5000
        assert request.file_size == 1024
        assert request.token is None

    def test_quoted_name_and_token(self):
        request = parse_dcc_request("bob", "alice", 'DCC SEND "holiday photos.tar" 2130706433 0 42 9')
        assert request.file_name == "holiday photos.tar"
        assert request.port == 0
        assert request.token == "9"

    def test_chat_offer(self):
        request = parse_dcc_request("bob", "alice", "\x01DCC CHAT chat 2130706433 6000\x01")
        assert request.type is DCCRequestType.CHAT
        assert request.port == 6000
        assert request.file_size == 0

    def test_resume(self):
        request = parse_dcc_request("bob", "alice", "\x01DCC RESUME file.zip 5000 512\x01")
        assert request.type is DCCRequestType.RESUME
        assert request.port == 5000
        assert request.file_size == 512

    def test_not_dcc(self):
        assert parse_dcc_request("bob", "alice", "\x01VERSION\x01") is None
        assert parse_dcc_request("bob", "alice", "hello") is None

    @pytest.mark.parametrize(
        "text",
        [
            "\x01DCC SEND file.zip 2130706433 5000\x01",
            "\x01DCC SEND file.zip 2130706433 port 10\x01",
            "\x01DCC SEND file.zip 2130706433 5000 -5\x01",
            '\x01DCC SEND "unterminated 2130706433 5000 10\x01',
            "\x01DCC BOGUS file.zip 1 2 3\x01",
            "\x01DCC SEND\x01",
        ],
    )
    def test_malformed(self, text):
        with pytest.raises(ParsingError):
            parse_dcc_request("bob", "alice", text)

    def test_build_then_parse(self):
        offer = build_dcc_send("a b.txt", "192.168.1.10", 4321, 99)
        request = parse_dcc_request("me", "you", offer)
        assert (request.file_name, request.address, request.port, request.file_size) == (
            "a b.txt",
            "192.168.1.10",
            4321,
            99,
        )


def test_split_file_name():
    assert split_file_name('"a b" 1 2') == ("a b", "1 2")
    assert split_file_name("plain 1 2") == ("plain", "1 2")
    with pytest.raises(ParsingError):
        split_file_name("")
