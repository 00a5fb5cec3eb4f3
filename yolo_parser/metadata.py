from __future__ import annotations

from pathlib import Path
from typing import Dict, Union


def load_class_names(path: Union[str, Path]) -> Dict[int, str]:
    """
    Load class names for printing detections.

    Two formats are accepted:

    - a labels file with one label per line (class id = line position among
      non-empty lines), as shipped next to most exported detectors
    - a lightweight `names:` mapping:

        names:
          0: person
          1: bicycle

    No YAML dependency is needed for either.
    """

    lines = Path(path).read_text(encoding="utf-8").splitlines()
    stripped = [line.strip() for line in lines]

    if "names:" in stripped:
        return _parse_names_mapping(stripped)

    names: Dict[int, str] = {}
    for line in stripped:
        if not line:
            continue
        names[len(names)] = line
    return names


def _parse_names_mapping(lines) -> Dict[int, str]:
    names: Dict[int, str] = {}
    in_names = False
    for line in lines:
        if not line or line.startswith("#"):
            continue
        if line == "names:":
            in_names = True
            continue
        if not in_names or ":" not in line:
            continue

        left, right = line.split(":", 1)
        left = left.strip()
        if not left.isdigit():
            continue
        names[int(left)] = right.strip().strip("'").strip('"')
    return names
