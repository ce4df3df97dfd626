"""Job entry-point launcher generation."""

from __future__ import annotations

import re
import stat
from pathlib import Path

from ..errors import ConfigurationError
from .utils import write_text

_ENTRY_POINT = re.compile(r"^(?P<module>[A-Za-z_][\w.]*):(?P<function>[A-Za-z_]\w*)$")

_TEMPLATE = '''#!/usr/bin/env python3
"""Job entry point for {app}.

Generated by jobpack; do not edit. Upload next to {archive}.
"""

import atexit
import os
import shutil
import sys
import tempfile
import zipfile

ARCHIVE_NAME = "{archive}"


def _prioritise_archive():
    here = os.path.dirname(os.path.abspath(__file__))
    local_archive = os.path.join(here, ARCHIVE_NAME)
    if os.path.exists(local_archive):
        # Native extensions cannot be imported from a zip, so unpack it.
        target = tempfile.mkdtemp(prefix="jobpack-deps-")
        atexit.register(shutil.rmtree, target, True)
        with zipfile.ZipFile(local_archive) as archive:
            archive.extractall(target)
        sys.path.insert(0, target)
        return
    # The service already placed the archive on sys.path; bundled files must
    # win over runtime-provided copies.
    matches = [entry for entry in sys.path if os.path.basename(entry) == ARCHIVE_NAME]
    for entry in matches:
        sys.path.remove(entry)
    sys.path[0:0] = matches


def main():
    _prioritise_archive()
    from {module} import {function} as entry_point

    return entry_point()


if __name__ == "__main__":
    sys.exit(main())
'''


def parse_entry_point(value: str) -> tuple[str, str]:
    match = _ENTRY_POINT.match(value.strip())
    if not match:
        raise ConfigurationError(f"Entry point must look like 'package.module:function' (got '{value}')")
    return match.group("module"), match.group("function")


def render_launcher(app: str, entry_point: str, archive_name: str) -> str:
    module, function = parse_entry_point(entry_point)
    return _TEMPLATE.format(app=app, archive=archive_name, module=module, function=function)


def write_launcher(path: Path, app: str, entry_point: str, archive_name: str) -> Path:
    write_text(path, render_launcher(app, entry_point, archive_name))
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path
