import pytest

from kpi_recon.engine.channel_normalizer import canonical_label, is_classified, normalize
from kpi_recon.utils.enums.reconciliation import ChannelCode


class TestNormalize:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("WEB", ChannelCode.WEB),
            ("web", ChannelCode.WEB),
            ("  Web  ", ChannelCode.WEB),
            ("wholesale", ChannelCode.WHOLESALE),
            ("Store\t", ChannelCode.STORE),
            ("shoku", ChannelCode.SHOKU),
            ("OTHER", ChannelCode.OTHER),
        ],
    )
    def test_known_labels(self, raw, expected):
        assert normalize(raw) is expected

    @pytest.mark.parametrize(
        "raw",
        ["", "   ", None, "WEB SHOP", "W E B", "wholesale-oem", "EC", "ストア", 42],
    )
    def test_unknown_labels_are_other(self, raw):
        assert normalize(raw) is ChannelCode.OTHER

    def test_no_partial_matching(self):
        assert normalize("WEBSTORE") is ChannelCode.OTHER
        assert normalize("STORE 1") is ChannelCode.OTHER

    def test_duplicate_internal_whitespace_collapses(self):
        assert canonical_label("  shoku   \n ") == "SHOKU"
        assert canonical_label("pop   up") == "POP UP"

    def test_is_classified(self):
        assert is_classified("web")
        assert not is_classified("mail order")
