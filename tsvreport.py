#!/usr/bin/env python3
"""
tsvreport: hierarchical reports from TSV data.

Reads a tab-separated table (first line is the header) from standard input
and prints a three stage report:

  Stage 1  row and column counts, and the last row of the table
  Stage 2  a stable sort of the data rows by the selected columns
  Stage 3  an indented tree of the distinct selected-column values,
           with the number of rows behind each one

Columns are selected with 1-indexed numbers on the command line, in
priority order. With no columns only Stage 1 is printed.
"""
import sys
import argparse
import math
from dataclasses import dataclass
from typing import Iterator, List, Optional, Sequence, Tuple

import pandas as pd

__version__ = "1.0.0"

# Default input limits. A limit of 0 disables it.
MAX_ROWS = 1000       # lines, header included
MAX_COLUMNS = 30
MAX_FIELD_LEN = 50

# Characters pulled from the input stream per read.
CHUNK_SIZE = 10000

CHAR_CR = '\r'
CHAR_NL = '\n'
CHAR_TB = '\t'

# Field terminators reported by read_fields().
FIELD_TAB = "tab"
FIELD_EOL = "eol"
FIELD_EOF = "eof"

# Report layout.
COLNUM_WIDTH = 2
LABEL_WIDTH = 10
INDENT_WIDTH = 4
COUNT_WIDTH = 5
COUNT_LABEL = "Count"


# --------------------------
# Errors
# --------------------------
class TsvReportError(ValueError):
    """Input or argument problem that stops the report before any output."""


class EmptyInputError(TsvReportError):
    pass


class InputTooLargeError(TsvReportError):
    pass


class IrregularShapeError(TsvReportError):
    pass


class InvalidColumnIndexError(TsvReportError, IndexError):
    pass


# --------------------------
# Utility Functions
# --------------------------
def _print_verbose(args, message):
    """Prints verbose output if enabled."""
    if args.verbose:
        sys.stderr.write(f"VERBOSE: {message}\n")


def _non_negative_int(value):
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"'{value}' is not an integer.")
    if number < 0:
        raise argparse.ArgumentTypeError(f"'{value}' must be >= 0.")
    return number


def _input_stream(encoding):
    """
    Returns stdin as a text stream that leaves line endings alone.

    Carriage returns are handled by read_fields(), so newline translation is
    switched off; a lone CR inside a field must not turn into a line break.
    """
    try:
        fd = sys.stdin.fileno()
    except (AttributeError, OSError, ValueError):
        # Already a text stream without a descriptor (e.g. replaced in tests).
        return sys.stdin
    return open(fd, mode='r', encoding=encoding, errors='replace', newline='', closefd=False)


# --------------------------
# Field Reader
# --------------------------
def read_fields(stream, max_field_len: int = MAX_FIELD_LEN,
                chunk_size: int = CHUNK_SIZE) -> Iterator[Tuple[str, str, int]]:
    """
    Splits a text stream into TSV fields.

    Yields (text, terminator, dropped) for every field, where terminator is
    FIELD_TAB, FIELD_EOL or FIELD_EOF and dropped counts the characters past
    max_field_len that were not kept (max_field_len 0 keeps everything).
    CR characters are skipped wherever they appear. The last item is always
    the FIELD_EOF field, which is empty when the input ends with a newline.
    """
    buf = []
    dropped = 0
    for chunk in iter(lambda: stream.read(chunk_size), ''):
        for ch in chunk:
            if ch == CHAR_CR:
                continue
            if ch == CHAR_TB or ch == CHAR_NL:
                yield ''.join(buf), FIELD_TAB if ch == CHAR_TB else FIELD_EOL, dropped
                buf = []
                dropped = 0
            elif max_field_len and len(buf) >= max_field_len:
                dropped += 1
            else:
                buf.append(ch)
    yield ''.join(buf), FIELD_EOF, dropped


# --------------------------
# Table Builder
# --------------------------
class TsvTable:
    """
    A parsed TSV table: the header row as a list, and the data rows as a
    DataFrame of strings with integer column labels 0..col_count-1.

    Rows are numbered the way the report prints them: 0 is the header and
    data rows start at 1.
    """

    def __init__(self, header: List[str], data: pd.DataFrame):
        self.header = list(header)
        self.data = data

    @property
    def row_count(self) -> int:
        """Number of data rows (header excluded)."""
        return len(self.data)

    @property
    def col_count(self) -> int:
        return len(self.header)

    def row(self, index: int) -> List[str]:
        if index == 0:
            return list(self.header)
        return list(self.data.iloc[index - 1])


def build_table(stream, max_rows: int = MAX_ROWS, max_cols: int = MAX_COLUMNS,
                max_field_len: int = MAX_FIELD_LEN, truncate: bool = False) -> TsvTable:
    """
    Reads every field from the stream and assembles a TsvTable.

    Each row must have as many fields as the header. Fields longer than
    max_field_len raise InputTooLargeError unless truncate is set, in which
    case the excess is dropped and a warning is written to stderr. A last line
    without a trailing newline still counts as a row.
    """
    rows = []
    current = []
    truncated = 0
    for text, terminator, dropped in read_fields(stream, max_field_len):
        if terminator == FIELD_EOF and not current and not text and not dropped:
            break
        line_no = len(rows) + 1
        if dropped:
            if not truncate:
                raise InputTooLargeError(
                    f"Line {line_no}, column {len(current) + 1}: field is longer than "
                    f"{max_field_len} characters. Use --truncate to cut long fields.")
            truncated += 1
        if max_cols and len(current) >= max_cols:
            raise InputTooLargeError(f"Line {line_no} has more than {max_cols} columns.")
        current.append(text)
        if terminator == FIELD_TAB:
            continue
        if max_rows and len(rows) >= max_rows:
            raise InputTooLargeError(f"Input has more than {max_rows} lines.")
        if rows and len(current) != len(rows[0]):
            raise IrregularShapeError(
                f"Line {line_no} has {len(current)} fields, expected {len(rows[0])} "
                f"(the number of header fields).")
        rows.append(current)
        current = []

    if not rows:
        raise EmptyInputError("Input is empty. A header row is required.")
    if truncated:
        sys.stderr.write(f"Warning: {truncated} field(s) truncated to {max_field_len} characters.\n")

    header = rows[0]
    data = pd.DataFrame(rows[1:], columns=range(len(header)), dtype=object)
    return TsvTable(header, data)


def resolve_columns(values: Sequence[int], col_count: int) -> List[int]:
    """Turns 1-indexed column numbers into 0-indexed keys, rejecting bad or repeated ones."""
    keys = []
    for value in values:
        if value < 1 or value > col_count:
            raise InvalidColumnIndexError(
                f"Column {value} is out of bounds. Valid columns are 1 to {col_count}.")
        if value - 1 in keys:
            raise InvalidColumnIndexError(f"Column {value} is selected more than once.")
        keys.append(value - 1)
    return keys


# --------------------------
# Stable Sorter
# --------------------------
def sort_table(table: TsvTable, keys: Sequence[int]) -> TsvTable:
    """
    Sorts the data rows of the table in place by the key columns, in priority
    order, comparing strings by code point. Rows that tie on every key keep
    their input order. The header is not part of the data and never moves.
    """
    if keys and not table.data.empty:
        table.data = table.data.sort_values(by=list(keys), kind='stable').reset_index(drop=True)
    return table


def middle_row_index(table_rows: int) -> int:
    """Row number of the middle row, for a table of table_rows rows including the header."""
    return math.ceil((table_rows - 1) / 2)


def describe_sort(header: Sequence[str], keys: Sequence[int]) -> List[str]:
    lines = []
    for i, key in enumerate(keys):
        lead = "sorting by" if i == 0 else "   then by"
        tail = "," if i < len(keys) - 1 else ""
        lines.append(f'{lead} "{header[key]}"{tail}')
    return lines


# --------------------------
# Grouping Tabulator
# --------------------------
@dataclass(frozen=True)
class EntryGroup:
    values: Tuple[str, ...]
    count: int


def group_entries(table: TsvTable, keys: Sequence[int]) -> List[EntryGroup]:
    """
    Collapses runs of adjacent rows that agree on every key column.

    Only neighbouring rows are merged, so the table must already be sorted
    by the same keys for each distinct entry to come out exactly once.
    """
    if table.data.empty:
        return []
    keyed = table.data[list(keys)]
    run_ids = keyed.ne(keyed.shift()).any(axis=1).cumsum()
    groups = []
    for _, run in keyed.groupby(run_ids, sort=False):
        groups.append(EntryGroup(tuple(run.iloc[0]), len(run)))
    return groups


def rendered_width(values: Sequence[str], indent_width: int = INDENT_WIDTH) -> int:
    """Widest line an entry produces when every level is printed."""
    return max((level * indent_width + len(value) for level, value in enumerate(values)), default=0)


class TreeTabulator:
    """
    Prints entry paths as an indented tree.

    Remembers the last value printed at each depth. An entry is printed from
    the first level that differs from what is remembered down to its deepest
    level; the shallower levels it shares with the previous entry are left
    out. The memory carries over from one entry to the next for the whole
    table, header included.
    """

    def __init__(self, depth: int, indent_width: int = INDENT_WIDTH):
        if depth < 1:
            raise ValueError("A tree needs at least one level.")
        self.depth = depth
        self.indent_width = indent_width
        self.last_printed: List[Optional[str]] = [None] * depth

    def tabulate(self, values: Sequence[str]) -> List[str]:
        """Returns the lines for one entry. The deepest level is always printed."""
        if len(values) != self.depth:
            raise ValueError(f"Entry has {len(values)} levels, expected {self.depth}.")
        first = next((level for level, value in enumerate(values)
                      if value != self.last_printed[level]), self.depth - 1)
        lines = []
        for level in range(first, self.depth):
            lines.append(" " * (level * self.indent_width) + values[level])
            self.last_printed[level] = values[level]
        return lines


def _attach_count(lines, count, width):
    lines[-1] = f"{lines[-1]:<{width}} {count:>{COUNT_WIDTH}}"
    return lines


def render_tabulation(header_values: Sequence[str], groups: Sequence[EntryGroup],
                      indent_width: int = INDENT_WIDTH) -> List[str]:
    """
    Lays out the Stage 3 table: a rule, the header tree with the count label,
    a rule, one tree path per group with its count, and a closing rule.
    Counts line up one space past the widest rendered line.
    """
    width = max([rendered_width(header_values, indent_width)] +
                [rendered_width(group.values, indent_width) for group in groups])
    rule = "-" * (width + 1 + COUNT_WIDTH)

    tabulator = TreeTabulator(len(header_values), indent_width)
    lines = [rule]
    lines.extend(_attach_count(tabulator.tabulate(header_values), COUNT_LABEL, width))
    lines.append(rule)
    for group in groups:
        lines.extend(_attach_count(tabulator.tabulate(group.values), group.count, width))
    lines.append(rule)
    return lines


# --------------------------
# Report Output
# --------------------------
def _print_stage_start(stage):
    sys.stdout.write(f"Stage {stage}\n")


def _print_row(header, row, row_num):
    sys.stdout.write(f"row {row_num} is:\n")
    for i, (name, value) in enumerate(zip(header, row), start=1):
        sys.stdout.write(f"  {i:>{COLNUM_WIDTH}}: {name:<{LABEL_WIDTH}} {value}\n")


def _print_tadaa():
    sys.stdout.write("ta daa!\n")


def do_stage1(table: TsvTable):
    _print_stage_start(1)
    sys.stdout.write(f"input tsv data has {table.row_count} rows and {table.col_count} columns\n")
    _print_row(table.header, table.row(table.row_count), table.row_count)
    sys.stdout.write("\n")


def do_stage2(table: TsvTable, keys: Sequence[int], args):
    _print_stage_start(2)
    for line in describe_sort(table.header, keys):
        sys.stdout.write(line + "\n")
    _print_verbose(args, f"Sorting {table.row_count} rows by columns {[k + 1 for k in keys]}.")
    sort_table(table, keys)
    if table.row_count:
        last = table.row_count
        for row_num in (1, middle_row_index(last + 1), last):
            _print_row(table.header, table.row(row_num), row_num)
    sys.stdout.write("\n")


def do_stage3(table: TsvTable, keys: Sequence[int], args):
    _print_stage_start(3)
    groups = group_entries(table, keys)
    _print_verbose(args, f"Found {len(groups)} distinct entries in {table.row_count} rows.")
    header_values = [table.header[k] for k in keys]
    for line in render_tabulation(header_values, groups, args.indent):
        sys.stdout.write(line + "\n")


def run_report(stream, args):
    """
    Runs all stages for the parsed command line. The input is read and
    checked, and the columns validated, before anything is printed.
    """
    table = build_table(stream, max_rows=args.max_rows, max_cols=args.max_cols,
                        max_field_len=args.max_field_len, truncate=args.truncate)
    _print_verbose(args, f"Read {table.row_count + 1} lines: {table.row_count} data rows, "
                         f"{table.col_count} columns.")
    keys = resolve_columns(args.columns, table.col_count)

    do_stage1(table)
    if keys:
        do_stage2(table, keys, args)
        do_stage3(table, keys, args)
    _print_tadaa()


# --------------------------
# Command Line
# --------------------------
def _setup_arg_parser():
    parser = argparse.ArgumentParser(
        prog="tsvreport",
        description=(
            "Generate a hierarchical report from TSV data read on stdin.\n\n"
            "Usage:\n"
            "    tsvreport [OPTIONS] [COL ...] < data.tsv\n\n"
            "COL values are 1-indexed column numbers, in priority order. They\n"
            "select the sort keys (Stage 2) and the tree levels (Stage 3).\n"
            "With no COL only the Stage 1 summary is printed."
        ),
        formatter_class=argparse.RawTextHelpFormatter
    )
    parser.add_argument(
        "columns", nargs="*", type=int, metavar="COL",
        help="Column number (1-indexed) to sort and group by."
    )

    limits = parser.add_argument_group("Input Limits (0 disables a limit)")
    limits.add_argument(
        "--max-rows", type=_non_negative_int, default=MAX_ROWS,
        help=f"Maximum number of input lines, header included (default: {MAX_ROWS})."
    )
    limits.add_argument(
        "--max-cols", type=_non_negative_int, default=MAX_COLUMNS,
        help=f"Maximum number of columns (default: {MAX_COLUMNS})."
    )
    limits.add_argument(
        "--max-field-len", type=_non_negative_int, default=MAX_FIELD_LEN,
        help=f"Maximum characters in a field (default: {MAX_FIELD_LEN})."
    )
    limits.add_argument(
        "--truncate", action="store_true",
        help="Cut fields longer than --max-field-len instead of failing."
    )

    output = parser.add_argument_group("Global Options")
    output.add_argument(
        "--indent", type=_non_negative_int, default=INDENT_WIDTH,
        help=f"Spaces per tree level in Stage 3 (default: {INDENT_WIDTH})."
    )
    output.add_argument(
        "--encoding", default="utf-8",
        help="Input encoding (default: utf-8). Undecodable bytes are replaced."
    )
    output.add_argument(
        "--verbose", action="store_true",
        help="Enable verbose debug output to stderr."
    )
    output.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )
    return parser


def main(argv=None):
    try:
        import signal
        signal.signal(signal.SIGPIPE, signal.SIG_DFL)
    except (ImportError, AttributeError, ValueError):
        pass

    parser = _setup_arg_parser()
    args = parser.parse_args(argv)

    try:
        run_report(_input_stream(args.encoding), args)
    except BrokenPipeError:
        pass
    except (ValueError, IndexError, LookupError) as e:
        sys.stderr.write(f"Error: {e}\n")
        sys.exit(1)


if __name__ == "__main__":
    main()
