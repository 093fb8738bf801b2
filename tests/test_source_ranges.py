"""Tests for Ruby block nesting and method range extraction."""

import pytest

from codeatlas.indexer.source_ranges import (
    block_end,
    block_opener,
    code_lines,
    depth_delta,
    extract_block,
    extract_blocks,
    extract_method_source,
    list_methods,
)

SERVICE_SOURCE = """\
class Foo
  def self.build
    new
  end

  def call
    items.each do |i|
      process(i) if i
    end
  end

  private

  def process(i)
    "end"
  end
end
"""


class TestCodeLines:
    """Literal and comment blanking."""

    def test_string_contents_blanked_quotes_kept(self):
        assert code_lines('x = "end"') == ['x = "   "']

    def test_trailing_comment_dropped(self):
        assert code_lines("foo # do something") == ["foo "]

    def test_heredoc_body_blanked(self):
        lines = code_lines("x = <<~SQL\n  select end\nSQL\ny = 1")
        assert lines == ["x = <<~SQL", "", "", "y = 1"]

    @pytest.mark.parametrize("opener", ["<<~'SQL'", '<<-"SQL"', "<<~SQL"])
    def test_quoted_heredoc_terminator(self, opener):
        lines = code_lines(f"x = {opener}\n  if you need help\n  SQL\ny = 1")
        assert lines[1:] == ["", "", "y = 1"]

    def test_heredoc_marker_inside_string_ignored(self):
        assert code_lines('x = "<<EOF"\ny = 1') == ['x = "     "', "y = 1"]

    def test_embedded_doc_blanked(self):
        lines = code_lines("=begin\ndef x\n=end\nz = 1")
        assert lines == ["", "", "", "z = 1"]


class TestDepthDelta:
    """Keyword counting on single neutralized lines."""

    @pytest.mark.parametrize("line,expected", [
        ("def foo", 1),
        ("end", -1),
        ("return if x", 0),
        ("if x", 1),
        ("items.each do |i|", 1),
        ("def ping; end", 0),
        ("def ok? = true", 0),
        ("while x do", 1),
        ("x = if y", 1),
        ("foo.end", 0),
    ])
    def test_delta(self, line, expected):
        assert depth_delta(line) == expected

    def test_block_opener(self):
        assert block_opener("items.each do |x|")
        assert block_opener("if ready")
        assert not block_opener("return if x")


class TestBlockEnd:
    def test_nested_block(self):
        source = "def a\n  if x\n    y\n  end\nend\ndef b\nend"
        assert block_end(source, 0) == 4

    def test_unclosed_block(self):
        assert block_end("def a\n  x", 0) is None

    def test_out_of_range_start(self):
        assert block_end("def a\nend", 5) is None


class TestMethods:
    """Method ranges, visibility and exact source."""

    def test_list_methods(self):
        methods = {m.name: m for m in list_methods(SERVICE_SOURCE)}

        assert set(methods) == {"build", "call", "process"}
        assert methods["build"].class_method
        assert (methods["build"].start_line, methods["build"].end_line) == (2, 4)
        assert (methods["call"].start_line, methods["call"].end_line) == (6, 10)
        assert methods["call"].visibility == "public"
        assert methods["process"].visibility == "private"
        assert methods["process"].line_count == 3

    def test_extract_method_source(self):
        text = extract_method_source(SERVICE_SOURCE, "call")
        assert text.startswith("  def call\n")
        assert "items.each do |i|" in text
        assert text.endswith("  end\n")

    def test_class_method_lookup_is_explicit(self):
        assert "new" in extract_method_source(SERVICE_SOURCE, "build", class_method=True)
        assert extract_method_source(SERVICE_SOURCE, "build") is None

    def test_missing_method(self):
        assert extract_method_source(SERVICE_SOURCE, "nope") is None
        assert extract_method_source("", "call") is None

    def test_method_with_quoted_heredoc(self):
        source = (
            "class WelcomeMailer < ApplicationMailer\n"
            "  def welcome\n"
            "    body = <<~'TEXT'\n"
            "      if you need help, reply to this email\n"
            "    TEXT\n"
            "    mail(body: body)\n"
            "  end\n"
            "\n"
            "  def goodbye\n"
            "    mail\n"
            "  end\n"
            "end\n"
        )
        text = extract_method_source(source, "welcome")
        assert text.endswith("    mail(body: body)\n  end\n")
        assert "goodbye" not in text

    def test_extract_blocks(self):
        blocks = extract_blocks(SERVICE_SOURCE, r"^\s*def\s+call\b")
        assert len(blocks) == 1
        start, text = blocks[0]
        assert start == 6
        assert text.count("end") == 2

    def test_extract_block_absent(self):
        assert extract_block(SERVICE_SOURCE, r"^\s*aasm\b") is None
