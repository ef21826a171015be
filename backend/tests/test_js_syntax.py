"""
Tests for parse profiles and literal evaluation
"""
import pytest

from promptdiff.services.js_syntax import (
    PARSE_PROFILES,
    ParseProfile,
    cook_escapes,
    js_number_text,
    parse_source,
)


class TestParseProfiles:
    """The first profile accepting the tree wins"""

    def test_plain_script_accepted_as_module(self):
        parsed = parse_source('const a = "x";')
        assert parsed.profile.name == "module-es2022"

    def test_module_syntax(self):
        parsed = parse_source("import x from 'y';\nexport const z = x;")
        assert parsed.profile.name == "module-es2022"

    def test_with_statement_needs_script(self):
        parsed = parse_source("with (obj) { a = 1; }")
        assert parsed.profile.name == "script-es2022"

    def test_class_fields_are_es2022(self):
        parsed = parse_source("class A { #secret = 1; static count = 0; }")
        assert parsed.profile.name == "module-es2022"

    def test_jsx_only_parses_permissively(self):
        parsed = parse_source("const el = <div className=\"x\" />;")
        assert parsed.profile.name == "latest-permissive"

    def test_conflicting_source_types_fall_through_to_permissive(self):
        parsed = parse_source("import x from 'y';\nwith (x) { z(); }")
        assert parsed.profile.name == "latest-permissive"

    def test_syntax_error_exhausts_profiles(self):
        assert parse_source("const = ;") is None

    def test_custom_profile_order(self):
        strict_only = (ParseProfile("script-es2020", "script", 2020),)
        assert parse_source("class A { #x = 1; }", profiles=strict_only) is None
        assert parse_source("var a = 1;", profiles=strict_only).profile.name == "script-es2020"

    def test_permissive_profile_forbids_nothing(self):
        assert PARSE_PROFILES[-1].forbidden_features == ()

    def test_parsed_source_text(self):
        parsed = parse_source("let a = 1;")
        assert parsed.text(parsed.root) == "let a = 1;"


class TestCookEscapes:

    @pytest.mark.parametrize("raw, cooked", [
        ("plain", "plain"),
        ("a\\nb", "a\nb"),
        ("tab\\there", "tab\there"),
        ("\\u0041", "A"),
        ("\\u{1F600}", "\U0001F600"),
        ("\\uD83D\\uDE00", "\U0001F600"),
        ("\\x41", "A"),
        ("\\0", "\0"),
        ("\\'quoted\\'", "'quoted'"),
        ("\\\\", "\\"),
        ("line\\\ncontinued", "linecontinued"),
    ])
    def test_escapes(self, raw, cooked):
        assert cook_escapes(raw) == cooked


class TestNumberText:

    @pytest.mark.parametrize("raw, text", [
        ("42", "42"),
        ("0x10", "16"),
        ("0o17", "15"),
        ("0b101", "5"),
        ("1_000", "1000"),
        ("1.50", "1.5"),
        ("1e3", "1000"),
        (".5", "0.5"),
        ("010", "8"),
        ("089", "89"),
        ("10n", "10"),
        ("123456789012345678901234567890n", "123456789012345678901234567890"),
        ("1e-7", "1e-7"),
        ("0.000001", "0.000001"),
        ("1e21", "1e+21"),
        ("1e20", "100000000000000000000"),
        ("123e-20", "1.23e-18"),
        ("1.5e300", "1.5e+300"),
        ("0.1", "0.1"),
        ("0.0", "0"),
    ])
    def test_numbers(self, raw, text):
        assert js_number_text(raw) == text
