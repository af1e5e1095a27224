import pytest

from shared.validators import parse_origin_list


class TestParseOriginList:
    def test_json_array_string(self):
        result = parse_origin_list('["https://a.com","https://b.com"]')
        assert result == ["https://a.com", "https://b.com"]

    def test_comma_separated_string(self):
        result = parse_origin_list("https://a.com , https://b.com")
        assert result == ["https://a.com", "https://b.com"]

    def test_passthrough_list(self):
        origins = ["https://a.com"]
        assert parse_origin_list(origins) == origins

    def test_comma_separated_skips_empty_segments(self):
        assert parse_origin_list("https://a.com,,https://b.com,") == ["https://a.com", "https://b.com"]

    def test_empty_string_means_no_origins(self):
        assert parse_origin_list("") == []

    def test_empty_json_array(self):
        assert parse_origin_list("[]") == []

    def test_invalid_json_raises(self):
        with pytest.raises(ValueError, match="Invalid JSON array"):
            parse_origin_list("[not valid json")

    def test_json_mixed_types_array_raises(self):
        with pytest.raises(ValueError, match="must be an array of strings"):
            parse_origin_list('["https://a.com", 123]')
