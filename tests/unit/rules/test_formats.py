"""Well-known format predicates."""

import pytest

from protoguard.rules import formats


class TestEmail:
    @pytest.mark.parametrize("value", ["a@b.co", "first.last+tag@example.com", "x@localhost"])
    def test_valid(self, value: str) -> None:
        assert formats.is_email(value)

    @pytest.mark.parametrize(
        "value",
        ["", "plain", "a@@b.co", "@b.co", "a@", "a b@c.co", "Ada <ada@b.co>", "a@b.co\n", "a@-b.co"],
    )
    def test_invalid(self, value: str) -> None:
        assert not formats.is_email(value)


class TestHostname:
    @pytest.mark.parametrize("value", ["example.com", "a-b.example.com", "localhost", "example.com."])
    def test_valid(self, value: str) -> None:
        assert formats.is_hostname(value)

    @pytest.mark.parametrize(
        "value", ["", "-a.com", "a-.com", "a..com", "1.2.3.4", "under_score.com", "a" * 64 + ".com"]
    )
    def test_invalid(self, value: str) -> None:
        assert not formats.is_hostname(value)


class TestIp:
    def test_any_version(self) -> None:
        assert formats.is_ip("192.168.0.1")
        assert formats.is_ip("::1")
        assert not formats.is_ip("256.0.0.1")
        assert not formats.is_ip("example.com")

    def test_specific_version(self) -> None:
        assert formats.is_ipv4("10.0.0.1")
        assert not formats.is_ipv4("::1")
        assert formats.is_ipv6("2001:db8::1")
        assert not formats.is_ipv6("10.0.0.1")
        assert not formats.is_ip("10.0.0.1", 5)

    def test_raw_bytes(self) -> None:
        assert formats.is_ipv4(b"\x7f\x00\x00\x01")
        assert formats.is_ipv6(bytes(16))
        assert not formats.is_ip(b"\x00\x01")


class TestUri:
    @pytest.mark.parametrize(
        "value", ["https://example.com/path?q=1#frag", "mailto:ada@example.com", "urn:isbn:0451450523"]
    )
    def test_absolute(self, value: str) -> None:
        assert formats.is_uri(value)
        assert formats.is_uri_ref(value)

    @pytest.mark.parametrize("value", ["/relative/path", "../up", "?q=1", "#frag", ""])
    def test_relative_references(self, value: str) -> None:
        assert formats.is_uri_ref(value)
        assert not formats.is_uri(value)

    @pytest.mark.parametrize(
        "value", ["http://exa mple.com", "http://example.com/%zz", "1http://x", "http://host:port/"]
    )
    def test_invalid(self, value: str) -> None:
        assert not formats.is_uri(value)


class TestUuid:
    def test_canonical_form(self) -> None:
        assert formats.is_uuid("123e4567-e89b-12d3-a456-426614174000")
        assert formats.is_uuid("123E4567-E89B-12D3-A456-426614174000")

    @pytest.mark.parametrize(
        "value",
        ["123e4567e89b12d3a456426614174000", "{123e4567-e89b-12d3-a456-426614174000}", "not-a-uuid", ""],
    )
    def test_other_forms_rejected(self, value: str) -> None:
        assert not formats.is_uuid(value)
