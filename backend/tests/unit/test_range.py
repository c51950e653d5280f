import pytest

from voicenotes.api.v1.endpoints.audio import RangeNotSatisfiable, parse_range_header


class TestParseRange:
    @pytest.mark.parametrize(
        "header, expected",
        [
            ("bytes=0-99", (0, 99)),
            ("bytes=100-", (100, 999)),
            ("bytes=-200", (800, 999)),
            ("bytes=-5000", (0, 999)),
            ("bytes=900-5000", (900, 999)),
            ("bytes = 10 - 20", (10, 20)),
        ],
    )
    def test_satisfiable(self, header, expected):
        assert parse_range_header(header, 1000) == expected

    @pytest.mark.parametrize("header", [None, "", "items=0-1", "bytes=-", "bytes=0-1,5-9", "bytes=abc"])
    def test_ignored(self, header):
        assert parse_range_header(header, 1000) is None

    @pytest.mark.parametrize("header", ["bytes=1000-", "bytes=5000-6000", "bytes=50-10", "bytes=-0"])
    def test_not_satisfiable(self, header):
        with pytest.raises(RangeNotSatisfiable):
            parse_range_header(header, 1000)

    def test_empty_object(self):
        with pytest.raises(RangeNotSatisfiable):
            parse_range_header("bytes=0-", 0)
