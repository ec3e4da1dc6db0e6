"""Tests for the desired lease config parser."""
import pytest

from mcp_static_lease.leases import LeaseConfigParser, ParseError


def lease(**overrides):
    values = {
        "hostname": "printer1",
        "mac_address": "AA:BB:CC:DD:EE:FF",
        "ip_address": "192.168.1.50",
        "enabled": True,
    }
    values.update(overrides)
    return values


class TestLeaseConfigParser:
    """Tests for LeaseConfigParser.parse."""

    @pytest.fixture
    def parser(self):
        return LeaseConfigParser()

    def test_parse_minimal(self, parser):
        """A valid config yields normalized entries keyed by name."""
        desired = parser.parse({"appliance": "home-gw", "leases": {"printer1": lease()}})
        assert desired.appliance_id == "home-gw"
        entry = desired.leases["printer1"]
        assert entry.mac_address == "aa:bb:cc:dd:ee:ff"
        assert entry.ip_address == "192.168.1.50"
        assert entry.enabled is True

    def test_enabled_defaults_to_false(self, parser):
        config = lease()
        del config["enabled"]
        desired = parser.parse({"appliance_id": "gw", "leases": {"p": config}})
        assert desired.leases["p"].enabled is False

    def test_empty_leases(self, parser):
        assert parser.parse({"appliance": "gw"}).leases == {}

    def test_missing_appliance(self, parser):
        with pytest.raises(ParseError, match="appliance"):
            parser.parse({"leases": {}})

    @pytest.mark.parametrize("field", ["hostname", "mac_address", "ip_address"])
    def test_missing_field(self, parser, field):
        config = lease()
        del config[field]
        with pytest.raises(ParseError, match=field):
            parser.parse({"appliance": "gw", "leases": {"p": config}})

    @pytest.mark.parametrize("mac", ["aa:bb:cc:dd:ee", "aa-bb-cc-dd-ee-ff", "zz:bb:cc:dd:ee:ff"])
    def test_invalid_mac(self, parser, mac):
        with pytest.raises(ParseError, match="invalid MAC"):
            parser.parse({"appliance": "gw", "leases": {"p": lease(mac_address=mac)}})

    @pytest.mark.parametrize("ip", ["192.168.1.256", "fe80::1", "printer"])
    def test_invalid_ip(self, parser, ip):
        with pytest.raises(ParseError, match="invalid IPv4"):
            parser.parse({"appliance": "gw", "leases": {"p": lease(ip_address=ip)}})

    def test_enabled_must_be_bool(self, parser):
        with pytest.raises(ParseError, match="enabled"):
            parser.parse({"appliance": "gw", "leases": {"p": lease(enabled="yes")}})

    def test_duplicate_mac_across_names(self, parser):
        """Two names cannot claim one hardware address, regardless of case."""
        with pytest.raises(ParseError, match="reuses MAC"):
            parser.parse({
                "appliance": "gw",
                "leases": {
                    "a": lease(),
                    "b": lease(mac_address="aa:bb:cc:dd:ee:ff", ip_address="192.168.1.51"),
                },
            })

    def test_parse_file(self, parser, tmp_path):
        path = tmp_path / "leases.yaml"
        path.write_text(
            "appliance: home-gw\n"
            "leases:\n"
            "  nas:\n"
            "    hostname: nas\n"
            "    mac_address: \"11:22:33:44:55:66\"\n"
            "    ip_address: 192.168.1.20\n"
        )
        desired = parser.parse_file(path)
        assert desired.leases["nas"].hostname == "nas"
