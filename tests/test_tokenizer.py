"""Tests for the line byte stream and the forgiving tokenizer."""

import pytest

from ntriple_reader import (
    XSD_NS,
    ForgivingTokenizer,
    LexicalError,
    LineByteStream,
    NTriplesSyntaxError,
    SkippedStatement,
    TokenizerState,
    TokenKind,
    open_line_reader,
)


def tokenizer_for(lines, line_offset=0):
    return ForgivingTokenizer(open_line_reader(lines), source="<test>", line_offset=line_offset)


class TestLineByteStream:

    def test_reinserts_line_terminators(self):
        stream = LineByteStream(["a", "bé"])
        assert stream.read() == b"a\nb\xc3\xa9\n"

    def test_pulls_lines_on_demand(self):
        pulled = []

        def lines():
            for line in ("ab", "cd", "ef"):
                pulled.append(line)
                yield line

        stream = LineByteStream(lines())
        assert stream.read(2) == b"ab"
        assert pulled == ["ab"]
        assert stream.read(3) == b"\n"
        assert pulled == ["ab"]
        assert stream.read(3) == b"cd\n"
        assert pulled == ["ab", "cd"]

    def test_empty_input_reads_nothing(self):
        assert LineByteStream([]).read() == b""

    def test_close_closes_source(self):
        state = {"closed": False}

        def lines():
            try:
                yield "one"
                yield "two"
            finally:
                state["closed"] = True

        stream = LineByteStream(lines())
        stream.read(1)
        stream.close()
        assert state["closed"]
        assert stream.closed

    def test_reader_yields_lines(self):
        reader = open_line_reader(["first", "second"])
        assert reader.readline() == "first\n"
        assert reader.readline() == "second\n"
        assert reader.readline() == ""


class TestTokenizerStatements:

    def test_iri_statement(self):
        tokenizer = tokenizer_for(["<urn:s> <urn:p> <urn:o> ."])
        tokens = tokenizer.next_statement()
        assert [t.kind for t in tokens] == [
            TokenKind.IRI,
            TokenKind.IRI,
            TokenKind.IRI,
            TokenKind.DOT,
        ]
        assert [t.value for t in tokens[:3]] == ["urn:s", "urn:p", "urn:o"]
        assert tokenizer.next_statement() is None

    def test_language_literal_positions(self):
        tokenizer = tokenizer_for(['<urn:s> <urn:p> "x"@en-GB .'])
        tokens = tokenizer.next_statement()
        literal = tokens[2]
        assert literal.kind is TokenKind.LITERAL_LANG
        assert literal.value == "x"
        assert literal.qualifier == "en-GB"
        assert literal.raw == '"x"@en-GB'
        assert (literal.line, literal.column) == (1, 17)

    def test_datatype_literal(self):
        tokenizer = tokenizer_for([f'<urn:s> <urn:p> "5"^^<{XSD_NS}integer> .'])
        literal = tokenizer.next_statement()[2]
        assert literal.kind is TokenKind.LITERAL_DT
        assert literal.value == "5"
        assert literal.qualifier == f"{XSD_NS}integer"

    def test_string_escapes_are_decoded(self):
        tokenizer = tokenizer_for([r'<urn:s> <urn:p> "a\tbA\"q\"" .'])
        literal = tokenizer.next_statement()[2]
        assert literal.kind is TokenKind.STRING
        assert literal.value == 'a\tbA"q"'

    def test_blank_nodes_without_space_before_dot(self):
        tokenizer = tokenizer_for(["_:b1 <urn:p> _:b.2."])
        tokens = tokenizer.next_statement()
        assert tokens[0].kind is TokenKind.BNODE
        assert tokens[0].value == "b1"
        assert tokens[2].value == "b.2"
        assert tokens[3].kind is TokenKind.DOT

    def test_comments_and_blank_lines_are_skipped(self):
        tokenizer = tokenizer_for(["# header", "", "   ", "<urn:s> <urn:p> <urn:o> . # trailing"])
        tokens = tokenizer.next_statement()
        assert tokens[0].line == 4
        assert tokenizer.next_statement() is None

    def test_line_offset(self):
        tokenizer = tokenizer_for(["<urn:s> <urn:p> <urn:o> ."], line_offset=10)
        assert tokenizer.next_statement()[0].line == 11


class TestTokenizerRecovery:

    def test_unterminated_literal_resyncs_at_next_line(self):
        tokenizer = tokenizer_for(
            ['<urn:s1> <urn:p1> "unterminated .', "<urn:s2> <urn:p2> <urn:o2> ."]
        )
        skipped = tokenizer.next_statement()
        assert isinstance(skipped, SkippedStatement)
        assert isinstance(skipped.error, LexicalError)
        assert skipped.error.line == 1
        assert tokenizer.state is TokenizerState.READ_SUBJECT

        tokens = tokenizer.next_statement()
        assert tokens[0].value == "urn:s2"
        assert tokens[0].line == 2
        assert tokenizer.skipped == 1

    def test_illegal_iri_character(self):
        tokenizer = tokenizer_for(["<urn:a b> <urn:p> <urn:o> ."])
        skipped = tokenizer.next_statement()
        assert isinstance(skipped.error, LexicalError)
        assert (skipped.error.line, skipped.error.column) == (1, 7)

    def test_missing_terminator(self):
        tokenizer = tokenizer_for(["<urn:s> <urn:p> <urn:o>"])
        skipped = tokenizer.next_statement()
        assert isinstance(skipped.error, NTriplesSyntaxError)
        assert skipped.error.column == 24
        assert "expected '.'" in skipped.error.message

    def test_terminator_in_object_position(self):
        tokenizer = tokenizer_for(["<urn:s> <urn:p> . <urn:o>"])
        skipped = tokenizer.next_statement()
        assert isinstance(skipped.error, NTriplesSyntaxError)
        assert "object" in skipped.error.message

    def test_content_after_terminator(self):
        tokenizer = tokenizer_for(["<urn:s> <urn:p> <urn:o> . <urn:x>"])
        skipped = tokenizer.next_statement()
        assert isinstance(skipped.error, NTriplesSyntaxError)

    def test_statement_cut_short(self):
        tokenizer = tokenizer_for(["<urn:s> <urn:p>"])
        skipped = tokenizer.next_statement()
        assert isinstance(skipped.error, NTriplesSyntaxError)
        assert "expected object" in skipped.error.message

    @pytest.mark.parametrize(
        "line",
        [
            r'<urn:s> <urn:p> "bad \q escape" .',
            r"<urn:s> <urn:p> <urn:\u00ZZ> .",
            '<urn:s> <urn:p> "x"^^urn:dt .',
            '<urn:s> <urn:p> "x"@ .',
            "_:.b <urn:p> <urn:o> .",
            "urn:s <urn:p> <urn:o> .",
        ],
    )
    def test_lexical_errors_are_isolated(self, line):
        tokenizer = tokenizer_for([line, "<urn:s> <urn:p> <urn:o> ."])
        skipped = tokenizer.next_statement()
        assert isinstance(skipped, SkippedStatement)
        assert isinstance(skipped.error, LexicalError)
        assert tokenizer.next_statement()[0].line == 2
