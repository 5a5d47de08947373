"""Tests for the nearest-test locator (jest_tools.locator)."""

from __future__ import annotations

import textwrap
from unittest.mock import patch

import pytest

from jest_tools.locator import (
    nearest_test_name,
    offset_from_position,
    parser_for,
    skip_indentation,
    TSX_LANGUAGE,
    TYPESCRIPT_LANGUAGE,
    unescape_literal,
)

NESTED = textwrap.dedent("""\
    import { sum } from "./sum";

    describe("Outer", () => {
      beforeEach(() => {
        setup();
      });

      it("inner works", () => {
        expect(sum(1, 2)).toBe(3); // CURSOR
      });

      describe('Middle', () => {
        test(`deep one`, () => {
          expect(true).toBe(true); // DEEP
        });
      });
    });

    test("solo", () => {
      expect(1).toBe(1); // SOLO
    });
    """)


def _at(source: str, marker: str) -> int:
    return source.index(marker)


class TestNearestTestName:
    def test_nested_describe_and_it(self):
        assert nearest_test_name(NESTED, _at(NESTED, "CURSOR"), "a.test.js") == "Outer inner works"

    def test_top_level_test(self):
        assert nearest_test_name(NESTED, _at(NESTED, "SOLO"), "a.test.js") == "solo"

    def test_repeated_describes_in_declaration_order(self):
        assert nearest_test_name(NESTED, _at(NESTED, "DEEP"), "a.test.js") == "Outer Middle deep one"

    def test_outside_any_call_returns_none(self):
        assert nearest_test_name(NESTED, _at(NESTED, "sum }"), "a.test.js") is None

    def test_inside_describe_but_outside_tests(self):
        assert nearest_test_name(NESTED, _at(NESTED, "setup()"), "a.test.js") == "Outer"

    def test_cursor_at_line_start_resolves_to_that_test(self):
        line_start = NESTED.index('  it("inner works"')
        assert nearest_test_name(NESTED, line_start, "a.test.js") == "Outer inner works"

    def test_cursor_on_callee_name(self):
        offset = _at(NESTED, 'test("solo"')
        assert nearest_test_name(NESTED, offset, "a.test.js") == "solo"

    def test_typescript_grammar(self):
        source = textwrap.dedent("""\
            describe("typed", () => {
              it("casts", () => {
                const n = value as number; // HERE
                const m: Array<string> = [];
              });
            });
            """)
        assert nearest_test_name(source, _at(source, "HERE"), "a.test.ts") == "typed casts"

    def test_jsx_in_js_file(self):
        source = textwrap.dedent("""\
            it("renders", () => {
              render(<Button label="x" />); // HERE
            });
            """)
        assert nearest_test_name(source, _at(source, "HERE"), "Button.test.jsx") == "renders"

    def test_non_string_title_contributes_nothing(self):
        source = textwrap.dedent("""\
            describe(Widget, () => {
              it("works", () => {
                run(); // HERE
              });
            });
            """)
        assert nearest_test_name(source, _at(source, "HERE")) == "works"

    def test_template_with_substitution_is_skipped(self):
        source = textwrap.dedent("""\
            describe("group", () => {
              it(`case ${n}`, () => {
                run(); // HERE
              });
            });
            """)
        assert nearest_test_name(source, _at(source, "HERE")) == "group"

    def test_member_callee_is_ignored(self):
        source = textwrap.dedent("""\
            describe.each([1, 2])("table %i", () => {
              it.only("focused", () => {
                run(); // HERE
              });
            });
            """)
        assert nearest_test_name(source, _at(source, "HERE")) is None

    def test_other_function_names_ignored(self):
        source = 'suite("not jest", () => { run(); });\n'
        assert nearest_test_name(source, source.index("run")) is None

    def test_identifier_titles_not_resolved(self):
        source = 'const NAME = "x";\ntest(NAME, () => { run(); });\n'
        assert nearest_test_name(source, source.index("run")) is None

    def test_empty_title_still_contributes(self):
        source = 'describe("Outer", () => { it("", () => { run(); }); });\n'
        assert nearest_test_name(source, source.index("run")) == "Outer"

    def test_only_empty_title(self):
        source = 'test("", () => { run(); });\n'
        assert nearest_test_name(source, source.index("run")) == ""

    def test_non_ascii_offsets(self):
        source = 'describe("größe", () => {\n  it("ünïcode", () => { run(); });\n});\n'
        assert nearest_test_name(source, source.index("run")) == "größe ünïcode"

    @pytest.mark.parametrize("literal, title", [
        (r'"say \"hi\""', 'say "hi"'),
        (r"'it\'s'", "it's"),
        (r'"café \u{1F600}"', "café \U0001F600"),
        (r"`back\`tick`", "back`tick"),
        (r'"tab\there"', "tab\there"),
    ])
    def test_escapes_in_titles_are_decoded(self, literal, title):
        source = f"it({literal}, () => {{ run(); }});\n"
        assert nearest_test_name(source, source.index("run")) == title

    @pytest.mark.parametrize("offset", [-1, 10_000])
    def test_out_of_range_offset(self, offset):
        assert nearest_test_name(NESTED, offset, "a.test.js") is None

    def test_empty_source(self):
        assert nearest_test_name("", 0) is None

    def test_unparsable_source_does_not_raise(self):
        source = 'it("broken", () => { expect(1).toBe( ;\n'
        nearest_test_name(source, source.index("expect"))


class TestHelpers:
    def test_offset_from_position(self):
        text = "one\ntwo\nthree\n"
        assert offset_from_position(text, 1, 0) == 0
        assert offset_from_position(text, 2, 1) == 5
        assert offset_from_position(text, 2, 99) == 7
        assert offset_from_position(text, 99, 0) == len(text)
        assert offset_from_position(text, 0, 3) == 0

    def test_skip_indentation_moves_inside_indent(self):
        text = "a\n    b\n"
        assert skip_indentation(text, 2) == 6
        assert skip_indentation(text, 4) == 6

    def test_skip_indentation_keeps_mid_line_offsets(self):
        text = "ab  cd\n"
        assert skip_indentation(text, 2) == 2

    @pytest.mark.parametrize("raw, expected", [
        ("plain", "plain"),
        (r"a\nb", "a\nb"),
        (r"\x41B\u{43}", "ABC"),
        (r"\uD83D\uDE00", "\U0001F600"),
        (r"lone \uD800", r"lone \uD800"),
        (r"\u{110000}", r"\u{110000}"),
        (r"\q\\", "q\\"),
        ("line\\\ncontinued", "linecontinued"),
    ])
    def test_unescape_literal(self, raw, expected):
        assert unescape_literal(raw) == expected

    @pytest.mark.parametrize("filename, expected", [
        ("a.test.ts", TYPESCRIPT_LANGUAGE),
        ("a.test.MTS", TYPESCRIPT_LANGUAGE),
        ("a.test.tsx", TSX_LANGUAGE),
        ("a.test.js", TSX_LANGUAGE),
        (None, TSX_LANGUAGE),
    ])
    def test_parser_for_selects_grammar(self, filename, expected):
        with patch("jest_tools.locator.Parser") as MockParser:
            parser_for(filename)
        assert MockParser.call_args[0][0] is expected
