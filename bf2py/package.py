from __future__ import annotations

import json
import logging
import shutil
import subprocess
from datetime import datetime, timezone
from pathlib import Path
from string import Template
from typing import Optional, Sequence

logger = logging.getLogger(__name__)

DEFAULT_FORMATTER = ("black", "--quiet", "-")

PYPROJECT_TEMPLATE = Template(
    """\
[build-system]
requires = ["setuptools>=61"]
build-backend = "setuptools.build_meta"

[project]
name = $package_toml
version = "0.1.0"
description = $description_toml
requires-python = ">=3.8"

[project.scripts]
$package_toml = "main:main"

[tool.setuptools]
py-modules = ["main"]

# Generated by bf2py at $timestamp
"""
)

README_TEMPLATE = Template(
    """\
# $package_name

This project was generated by bf2py from `$source_filename` at $timestamp.

Run it with `python main.py` (input is read from stdin when the program needs it).

## Source

```brainfuck
$source_code
```
"""
)


class FormatterError(RuntimeError):
    """Raised when the external formatter cannot be run or exits non-zero."""


def format_code(code: str, formatter: Sequence[str] = DEFAULT_FORMATTER) -> str:
    """Pipe ``code`` through ``formatter`` (stdin to stdout) and return the result."""
    logger.debug("formatting generated code with %s", " ".join(formatter))
    try:
        completed = subprocess.run(
            list(formatter),
            input=code,
            stdout=subprocess.PIPE,
            text=True,
            check=False,
        )
    except OSError as exc:
        raise FormatterError(f"Could not run formatter {formatter[0]!r}: {exc}") from exc
    if completed.returncode != 0:
        raise FormatterError(f"{formatter[0]} failed with exit status {completed.returncode}")
    return completed.stdout


def _toml_string(text: str) -> str:
    # JSON string escapes are a subset of TOML basic string escapes
    return json.dumps(text, ensure_ascii=False)


def generate_project(
    output_dir: Path,
    source_path: Path,
    source_code: str,
    generated_code: str,
    *,
    format_output: bool = False,
    formatter: Sequence[str] = DEFAULT_FORMATTER,
    timestamp: Optional[datetime] = None,
) -> Path:
    """Write a runnable project for ``generated_code`` into ``output_dir``.

    Returns the path of the generated ``main.py``. When ``format_output`` is
    set the unformatted script is written first and only replaced once the
    formatter succeeds.
    """
    output_dir = Path(output_dir)
    source_path = Path(source_path)
    output_dir.mkdir(parents=True, exist_ok=True)

    moment = timestamp or datetime.now(timezone.utc)
    replacements = {
        "package_name": output_dir.resolve().name,
        "package_toml": _toml_string(output_dir.resolve().name),
        "description_toml": _toml_string(f"Python translation of {source_path.name}"),
        "source_filename": source_path.name,
        "source_code": source_code,
        "timestamp": moment.strftime("%Y-%m-%dT%H:%M:%SZ"),
    }
    (output_dir / "pyproject.toml").write_text(
        PYPROJECT_TEMPLATE.substitute(replacements), encoding="utf-8"
    )
    (output_dir / "README.md").write_text(README_TEMPLATE.substitute(replacements), encoding="utf-8")

    source_copy = output_dir / source_path.name
    if source_path.exists() and source_path.resolve() != source_copy.resolve():
        shutil.copyfile(source_path, source_copy)

    main_path = output_dir / "main.py"
    main_path.write_text(generated_code, encoding="utf-8")
    if format_output:
        main_path.write_text(format_code(generated_code, formatter), encoding="utf-8")

    logger.debug("wrote project to %s", output_dir)
    return main_path


__all__ = [
    "DEFAULT_FORMATTER",
    "FormatterError",
    "format_code",
    "generate_project",
]
