import pytest

from protoc_decoder.errors import InvalidInput
from protoc_decoder.inputs import (
    InputFormat,
    clean_hex,
    error_char_range,
    hex_to_bytes,
    normalize_input,
)


class TestHexToBytes:
    def test_plain_and_spaced(self):
        assert hex_to_bytes("089601") == b"\x08\x96\x01"
        assert hex_to_bytes("08 96 01") == b"\x08\x96\x01"
        assert hex_to_bytes("0A") == b"\x0a"

    def test_invalid_character(self):
        with pytest.raises(InvalidInput, match="Invalid hex character 'g' at position 2"):
            hex_to_bytes("08g6")

    def test_odd_length(self):
        with pytest.raises(InvalidInput, match="even length"):
            hex_to_bytes("089")


class TestCleanHex:
    def test_prefixes_and_separators_dropped(self):
        cleaned, source_map = clean_hex("0x08, 0x96 01")
        assert cleaned == "089601"
        assert source_map == [2, 3, 8, 9, 11, 12]

    def test_punctuation_separators_skipped(self):
        cleaned, source_map = clean_hex("08:96-01")
        assert cleaned == "089601"
        assert source_map == [0, 1, 3, 4, 6, 7]

    def test_non_hex_letter_rejected(self):
        with pytest.raises(InvalidInput, match="Invalid hex character 'Z' at position 3"):
            clean_hex("08 ZZ")


class TestNormalizeInput:
    def test_hex_default(self):
        assert normalize_input("  08 96 01\n") == b"\x08\x96\x01"

    def test_hex_tolerates_noise(self):
        assert normalize_input("0x08,0x96,0x01") == b"\x08\x96\x01"

    def test_empty(self):
        with pytest.raises(InvalidInput, match="empty"):
            normalize_input("   ")

    def test_no_hex_digits(self):
        with pytest.raises(InvalidInput, match="no valid hexadecimal"):
            normalize_input(", ; -")

    def test_non_hex_letter_rejected(self):
        with pytest.raises(InvalidInput, match="Invalid hex character 'g' at position 6"):
            normalize_input("  08 9g")

    def test_incomplete_hex_byte(self):
        with pytest.raises(InvalidInput, match="incomplete hex byte string"):
            normalize_input("089")

    def test_base64(self):
        assert normalize_input("CJYB", InputFormat.BASE64) == b"\x08\x96\x01"

    def test_base64_by_name(self):
        assert normalize_input("CJ YB\n", "base64") == b"\x08\x96\x01"

    def test_invalid_base64(self):
        with pytest.raises(InvalidInput, match="Invalid base64 input"):
            normalize_input("C*YB", InputFormat.BASE64)

    def test_decimal(self):
        assert normalize_input("8, 150; 1", InputFormat.DECIMAL) == b"\x08\x96\x01"

    @pytest.mark.parametrize("token", ["256", "-1", "abc"])
    def test_invalid_decimal(self, token):
        with pytest.raises(InvalidInput, match=f'Invalid decimal byte value: "{token}"'):
            normalize_input(f"8 {token}", InputFormat.DECIMAL)

    def test_unknown_format(self):
        with pytest.raises(ValueError):
            normalize_input("08", "octal")


class TestErrorCharRange:
    def test_maps_back_to_source(self):
        _, source_map = clean_hex("0x08, 0x96 01")
        assert error_char_range(0, source_map) == (2, 4)
        assert error_char_range(1, source_map) == (8, 10)
        assert error_char_range(2, source_map) == (11, 13)

    def test_out_of_range(self):
        _, source_map = clean_hex("0896")
        assert error_char_range(2, source_map) is None
        assert error_char_range(None, source_map) is None
