from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from keyfix.errors import UsageError
from keyfix.options import RunOptions


def test_defaults_read_stdin_and_emit_source() -> None:
    options = RunOptions.build()

    assert options.reads_stdin
    assert options.emit
    assert not options.write


def test_list_only_skips_emission_unless_writing() -> None:
    assert not RunOptions.build(list_only=True).emit
    assert RunOptions.build(list_only=True, write=True, paths=[Path("a.py")]).emit


def test_write_requires_paths() -> None:
    with pytest.raises(UsageError, match="can't use -w on stdin"):
        RunOptions.build(write=True)


def test_diff_and_list_are_exclusive() -> None:
    with pytest.raises(UsageError, match="-d with -l"):
        RunOptions.build(diff=True, list_only=True, paths=[Path("a.py")])


def test_unknown_options_are_rejected() -> None:
    with pytest.raises(UsageError):
        RunOptions.build(recursive=True)


def test_options_are_frozen() -> None:
    options = RunOptions.build(paths=["a.py"])

    assert options.paths == [Path("a.py")]
    with pytest.raises(ValidationError):
        options.write = True  # type: ignore[misc]
