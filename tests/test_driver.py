from __future__ import annotations

import textwrap
from pathlib import Path

import pytest

from keyfix.driver import fix_path, fix_source
from keyfix.errors import ParseError, UnitError


def _source(text: str) -> bytes:
    return textwrap.dedent(text).lstrip().encode("utf-8")


def test_keys_positional_calls_and_leaves_the_rest(sample_package) -> None:
    path = sample_package.write(
        "main.py",
        """
        from .models import Pair, Plain, Point, Span

        origin = Point(0, 0)
        pair = Pair("a", right="b")
        span = Span(1, 2)
        plain = Plain(1, 2)
        partial = Point(1)
        """,
    )

    result = fix_path(path, cwd=sample_package.root)

    assert result.changed
    assert result.keyed_calls == 2
    assert result.output == _source(
        """
        from .models import Pair, Plain, Point, Span

        origin = Point(x=0, y=0)
        pair = Pair("a", right="b")
        span = Span(start=1, end=2)
        plain = Plain(1, 2)
        partial = Point(1)
        """
    )


def test_builtins_and_functions_are_never_keyed(sample_package) -> None:
    original = _source(
        """
        def build(a, b):
            return (a, b)

        items = list((1, 2, 3))
        pair = build(1, 2)
        """
    )
    path = sample_package.package / "main.py"
    path.write_bytes(original)

    result = fix_path(path, cwd=sample_package.root)

    assert not result.changed
    assert result.output == original


@pytest.mark.parametrize("call", ["Box(i for i in range(3))", "Box(y := 1)"])
def test_arguments_that_cannot_take_a_keyword_are_left_alone(sample_package, call: str) -> None:
    sample_package.write(
        "box.py",
        """
        from dataclasses import dataclass


        @dataclass
        class Box:
            x: object
        """,
    )
    original = f"from .box import Box\nvalue = {call}\n".encode("utf-8")
    path = sample_package.package / "main.py"
    path.write_bytes(original)

    result = fix_path(path, cwd=sample_package.root)

    assert not result.changed
    assert result.output == original


def test_call_text_inside_strings_is_untouched(sample_package) -> None:
    path = sample_package.write(
        "main.py",
        '''
        from .models import Point

        s = "Point(1, 2)"
        doc = """Point(3, 4)"""
        p = Point(5, 6)  # Point(7, 8)
        ''',
    )

    result = fix_path(path, cwd=sample_package.root)

    assert result.output == _source(
        '''
        from .models import Point

        s = "Point(1, 2)"
        doc = """Point(3, 4)"""
        p = Point(x=5, y=6)  # Point(7, 8)
        '''
    )


def test_lone_carriage_return_line_endings(sample_package) -> None:
    original = b'from .models import Point\r\rlabel = "\xc3\xa9"\rp = Point(1, 2)\r'
    path = sample_package.package / "main.py"
    path.write_bytes(original)

    result = fix_path(path, cwd=sample_package.root)

    assert result.output == b'from .models import Point\r\rlabel = "\xc3\xa9"\rp = Point(x=1, y=2)\r'


def test_unchanged_file_is_returned_byte_for_byte(sample_package) -> None:
    original = _source(
        """
        from .models import Point

        # nothing positional here
        p = Point(x=1, y=2)
        """
    )
    path = sample_package.package / "main.py"
    path.write_bytes(original)

    result = fix_path(path, cwd=sample_package.root)

    assert not result.changed
    assert len(result.edits) == 0
    assert result.output == original
    assert result.diff() == ""


def test_rewriting_is_idempotent(sample_package) -> None:
    path = sample_package.write("main.py", "from .models import Point\nPoint(1, 2)\n")

    first = fix_path(path, cwd=sample_package.root)
    path.write_bytes(first.output)
    second = fix_path(path, cwd=sample_package.root)

    assert first.changed
    assert not second.changed
    assert second.output == first.output


def test_formatting_and_comments_are_preserved(sample_package) -> None:
    path = sample_package.write(
        "main.py",
        """
        from .models import Point

        value = Point(  # first
            ( 1 + 2 ),
            # between
            3,  # last
        )
        """,
    )

    result = fix_path(path, cwd=sample_package.root)

    assert result.output == _source(
        """
        from .models import Point

        value = Point(  # first
            x=( 1 + 2 ),
            # between
            y=3,  # last
        )
        """
    )


def test_nested_calls_are_keyed_independently(sample_package) -> None:
    path = sample_package.write(
        "main.py",
        """
        from .models import Pair, Point

        nested = Pair(Point(1, 2), Point(3, y=4))
        """,
    )

    result = fix_path(path, cwd=sample_package.root)

    assert result.keyed_calls == 2
    assert b"Pair(left=Point(x=1, y=2), right=Point(3, y=4))" in result.output


def test_crlf_and_non_ascii_offsets(sample_package) -> None:
    original = 'from .models import Pair\r\nlabel = "héllo"; p = Pair("ü", "ß")\r\n'.encode("utf-8")
    path = sample_package.package / "main.py"
    path.write_bytes(original)

    result = fix_path(path, cwd=sample_package.root)

    expected = 'from .models import Pair\r\nlabel = "héllo"; p = Pair(left="ü", right="ß")\r\n'
    assert result.output == expected.encode("utf-8")


def test_byte_order_mark_is_kept_and_offsets_shift(sample_package) -> None:
    path = sample_package.package / "main.py"
    path.write_bytes(b"\xef\xbb\xbffrom .models import Point\nPoint(1, 2)\n")

    result = fix_path(path, cwd=sample_package.root)

    assert result.output == b"\xef\xbb\xbffrom .models import Point\nPoint(x=1, y=2)\n"


def test_declared_latin1_encoding_is_respected(sample_package) -> None:
    text = '# -*- coding: latin-1 -*-\nfrom .models import Pair\nPair("é", "è")\n'
    path = sample_package.package / "main.py"
    path.write_bytes(text.encode("latin-1"))

    result = fix_path(path, cwd=sample_package.root)

    expected = '# -*- coding: latin-1 -*-\nfrom .models import Pair\nPair(left="é", right="è")\n'
    assert result.output == expected.encode("latin-1")


def test_list_mode_skips_patching(sample_package) -> None:
    path = sample_package.write("main.py", "from .models import Point\nPoint(1, 2)\n")

    result = fix_path(path, emit=False, cwd=sample_package.root)

    assert result.changed
    assert result.output is None
    assert len(result.edits) == 0


def test_diff_uses_given_label(sample_package) -> None:
    path = sample_package.write("main.py", "from .models import Point\nPoint(1, 2)\n")

    diff = fix_path(path, cwd=sample_package.root).diff("shapes_pkg/main.py")

    assert diff.startswith("--- a/shapes_pkg/main.py\n+++ b/shapes_pkg/main.py\n")
    assert "-Point(1, 2)\n+Point(x=1, y=2)\n" in diff


def test_stdin_source_joins_working_directory_package(sample_package) -> None:
    data = b"from .models import Point\nPoint(1, 2)\n"

    result = fix_source(data, cwd=sample_package.package)

    assert result.source.name == "shapes_pkg.__stdin__"
    assert result.display_name == "<standard input>"
    assert result.output == b"from .models import Point\nPoint(x=1, y=2)\n"


def test_stdin_source_outside_a_package(tmp_path: Path) -> None:
    (tmp_path / "records.py").write_text(
        "import typing\nclass Row(typing.NamedTuple):\n    a: int\n    b: int\n",
        encoding="utf-8",
    )

    result = fix_source(b"from records import Row\nRow(1, 2)\n", cwd=tmp_path)

    assert result.output == b"from records import Row\nRow(a=1, b=2)\n"


def test_syntax_errors_across_the_unit_are_collected(sample_package) -> None:
    sample_package.write("broken.py", "def (:\n")
    path = sample_package.write("main.py", "x = (\n")

    with pytest.raises(ParseError) as excinfo:
        fix_path(path, cwd=sample_package.root)

    assert len(excinfo.value.errors) == 2
    assert any("broken.py" in message for message in excinfo.value.errors)
    assert any("main.py" in message for message in excinfo.value.errors)


def test_non_python_inputs_are_rejected(sample_package) -> None:
    notes = sample_package.package / "notes.txt"
    notes.write_text("Point(1, 2)\n", encoding="utf-8")

    with pytest.raises(UnitError):
        fix_path(notes, cwd=sample_package.root)
    with pytest.raises(UnitError):
        fix_path(sample_package.package, cwd=sample_package.root)
