from __future__ import annotations

import sys
import textwrap
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))


MODELS_SOURCE = """
from __future__ import annotations

from collections import namedtuple
from dataclasses import dataclass, field
from typing import NamedTuple


@dataclass
class Point:
    x: int
    y: int


class Pair(NamedTuple):
    left: str
    right: str


Span = namedtuple("Span", "start end")


class Plain:
    def __init__(self, a, b):
        self.a = a
        self.b = b
"""


@dataclass(slots=True)
class SamplePackage:
    """Fixture payload describing a synthetic package on disk."""

    root: Path
    package: Path

    def write(self, name: str, source: str) -> Path:
        """Write ``source`` (dedented) to ``name`` inside the package."""

        path = self.package / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(textwrap.dedent(source).lstrip(), encoding="utf-8")
        return path

    def write_many(self, files: Mapping[str, str]) -> None:
        for name, source in files.items():
            self.write(name, source)


@pytest.fixture()
def sample_package(tmp_path: Path) -> SamplePackage:
    """Create ``shapes_pkg`` with a models module defining each record kind."""

    root = tmp_path / "workspace"
    package = root / "shapes_pkg"
    package.mkdir(parents=True)
    (package / "__init__.py").write_text("", encoding="utf-8")
    sample = SamplePackage(root=root, package=package)
    sample.write("models.py", MODELS_SOURCE)
    return sample
