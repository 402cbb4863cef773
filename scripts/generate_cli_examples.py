from __future__ import annotations

import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

EXAMPLES_ROOT = Path("examples/cli-options")
BASE_ARGS = ["--width", "160", "--height", "120", "--iterations", "80"]


@dataclass
class Expected:
    path: Path


@dataclass
class Example:
    name: str
    args: list[str]
    expected: list[Expected]
    clean: list[Path] | None = None

    def full_args(self) -> list[str]:
        return ["python", "generate.py", *self.args]


def _single(name: str, filename: str, *extra: str) -> Example:
    target = EXAMPLES_ROOT / name / filename
    return Example(
        name=name,
        args=[*BASE_ARGS, *extra, "--output", str(target)],
        expected=[Expected(target)],
        clean=[EXAMPLES_ROOT / name],
    )


EXAMPLES: list[Example] = [
    _single("whole", "whole.png"),
    _single("iterations", "high-iterations.png", "--iterations", "400"),
    _single("zoom", "seahorse-valley.png", "--zoom", "40", "--center-x", "-0.745", "--center-y", "0.1"),
    _single("center", "upper-plane.png", "--center-y", "0.6"),
    _single("size", "wide.png", "--width", "240", "--height", "90"),
    _single("progressive", "bands.png", "--mode", "progressive"),
    _single("band-rows", "thin-bands.png", "--mode", "progressive", "--band-rows", "5"),
    _single("workers", "parallel.png", "--mode", "progressive", "--workers", "4"),
    _single("backend", "scalar.png", "--width", "48", "--height", "36", "--backend", "python"),
    _single("format", "custom.webp", "--format", "webp"),
    Example(
        name="progress-gif",
        args=[
            *BASE_ARGS,
            "--mode",
            "progressive",
            "--progress-gif",
            str(EXAMPLES_ROOT / "progress-gif" / "build.gif"),
            "--gif-frame-duration",
            "0.2",
            "--output",
            str(EXAMPLES_ROOT / "progress-gif" / "final.png"),
        ],
        expected=[
            Expected(EXAMPLES_ROOT / "progress-gif" / "build.gif"),
            Expected(EXAMPLES_ROOT / "progress-gif" / "final.png"),
        ],
        clean=[EXAMPLES_ROOT / "progress-gif"],
    ),
    _single("verbose", "diagnostic.png", "--verbose"),
]


def _ensure_clean(paths: Iterable[Path]) -> None:
    for path in paths:
        if path.exists():
            if path.is_dir():
                shutil.rmtree(path)
            else:
                path.unlink()


def _prepare(example: Example) -> None:
    clean = example.clean or []
    _ensure_clean(clean)
    for expected in example.expected:
        expected.path.parent.mkdir(parents=True, exist_ok=True)


def _verify(example: Example) -> None:
    for expected in example.expected:
        if not expected.path.is_file():
            raise RuntimeError(f"Expected file {expected.path} was not created")


def main() -> None:
    EXAMPLES_ROOT.mkdir(parents=True, exist_ok=True)
    for example in EXAMPLES:
        print(f"\n[cli-example] {example.name}")
        _prepare(example)
        subprocess.run(example.full_args(), check=True)
        _verify(example)
    print("\nAll CLI examples generated successfully.")


if __name__ == "__main__":
    main()
