import unittest
import io
import mock

# Objects under test
import candb.parser
from candb.exceptions import DBCSyntaxError


class StreamParserTests(unittest.TestCase):

    def test_simple_lines(self):
        lines = [
            'simple',
            '"line starts" with a string',
            'line with "a string at the end"',
            'line with a "string" in the middle',
            'line extends "over\nmultiple" lines',
            'this "line" has "multiple" strings',
            'last line has no newline char',
        ]
        stream = io.StringIO('\n'.join(lines))
        p = candb.parser.StreamParser(stream)

        self.assertEqual(
            [l.rstrip('\n') for l in p.line_iter()],
            lines,
        )

    def test_empty_stream(self):
        stream = io.StringIO('')
        p = candb.parser.StreamParser(stream)
        self.assertEqual(list(p.line_iter()), [])

    @mock.patch('candb.parser.CHUNK_SIZE', 1)
    def test_small_chunk_size(self):
        lines = [
            'simple',
            '"line starts" with a string',
            'line with "a string at the end"',
        ]
        stream = io.StringIO('\n'.join(lines))
        p = candb.parser.StreamParser(stream)

        self.assertEqual(
            [l.rstrip('\n') for l in p.line_iter()],
            lines,
        )

    @mock.patch('candb.parser.CHUNK_SIZE', 0x1000)  # consumes whole stream
    def test_large_chunk_size(self):
        lines = [
            'simple',
            '"line starts" with a string',
            'line with "a string at the end"',
        ]
        stream = io.StringIO('\n'.join(lines))
        p = candb.parser.StreamParser(stream)

        self.assertEqual(
            [l.rstrip('\n') for l in p.line_iter()],
            lines,
        )

    def test_empty_lines(self):
        lines = [
            '',  # 1st line empty
            'line 2',
            '',  # 3rd line empty
            'line 4',
            '',  # last line empty
        ]
        stream = io.StringIO('\n'.join(lines) + '\n')  # force newline char at EOF
        p = candb.parser.StreamParser(stream)

        self.assertEqual(
            [l.rstrip('\n') for l in p.line_iter()],
            lines,
        )

    def test_unclosed_str(self):
        stream = io.StringIO('foo "bar')
        p = candb.parser.StreamParser(stream)
        with self.assertRaises(DBCSyntaxError):
            list(p.line_iter())

    def test_escaped_quote(self):
        lines = [
            'CM_ "say \\"hi\nthere\\"";',
            'next',
        ]
        stream = io.StringIO('\n'.join(lines))
        p = candb.parser.StreamParser(stream)

        self.assertEqual(
            [l.rstrip('\n') for l in p.line_iter()],
            lines,
        )

    @mock.patch('candb.parser.CHUNK_SIZE', 1)
    def test_escape_across_chunks(self):
        lines = [
            'a "b\\"\nc\\\\" d',  # escaped quote, then escaped backslash
            'e',
        ]
        stream = io.StringIO('\n'.join(lines))
        p = candb.parser.StreamParser(stream)

        self.assertEqual(
            [l.rstrip('\n') for l in p.line_iter()],
            lines,
        )

    def test_escaped_backslash_closes_string(self):
        # "\\" is a complete string, the following newline ends the line
        stream = io.StringIO('a "\\\\"\nb')
        p = candb.parser.StreamParser(stream)
        self.assertEqual(
            [l.rstrip('\n') for l in p.line_iter()],
            ['a "\\\\"', 'b'],
        )

    def test_line_numbers(self):
        stream = io.StringIO('one\ntwo "spans\nlines"\n\nfour')
        p = candb.parser.StreamParser(stream)

        numbers = []
        for line in p.line_iter():
            numbers.append(p.line_number)
        self.assertEqual(numbers, [1, 2, 4, 5])
