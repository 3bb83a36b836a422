"""
Tests for device fingerprinting.
"""
from portal_auth.sessions.fingerprint import generate_fingerprint, ip_subnet

from helpers import BROWSER_UA, PHONE_UA


class TestIpSubnet:
    def test_ipv4_keeps_first_three_octets(self):
        assert ip_subnet("198.51.100.23") == "198.51.100"

    def test_ipv6_keeps_network_prefix(self):
        assert ip_subnet("2001:db8:85a3:12:8a2e:370:7334:1") == "2001:db8:85a3:12::"

    def test_non_ip_value_kept_verbatim(self):
        assert ip_subnet("testclient") == "testclient"

    def test_missing_ip(self):
        assert ip_subnet(None) == ""
        assert ip_subnet("") == ""


class TestGenerateFingerprint:
    def test_deterministic_hex_digest(self):
        first = generate_fingerprint(BROWSER_UA, "198.51.100.23")
        second = generate_fingerprint(BROWSER_UA, "198.51.100.23")

        assert first == second
        assert len(first) == 64
        int(first, 16)

    def test_host_change_within_subnet_keeps_fingerprint(self):
        """Carrier reassigning the host address inside the /24."""
        assert generate_fingerprint(BROWSER_UA, "198.51.100.23") == generate_fingerprint(BROWSER_UA, "198.51.100.201")

    def test_subnet_change_changes_fingerprint(self):
        assert generate_fingerprint(BROWSER_UA, "198.51.100.23") != generate_fingerprint(BROWSER_UA, "198.51.101.23")

    def test_user_agent_change_changes_fingerprint(self):
        assert generate_fingerprint(BROWSER_UA, "198.51.100.23") != generate_fingerprint(PHONE_UA, "198.51.100.23")

    def test_missing_inputs(self):
        assert generate_fingerprint(None, None) == generate_fingerprint("", "")
