from __future__ import annotations

import ast
from pathlib import Path
from typing import Dict, Mapping, Union


def parse_class_names(text: str) -> Dict[int, str]:
    """
    Parse class names from either of the formats models ship with.

    A dict literal, as stored in an exported model's `names` metadata:

        {0: 'person', 1: 'bicycle'}

    or a `names:` block from a metadata.yaml file:

        names:
          0: person
          1: bicycle
    """

    stripped = text.strip()
    if stripped.startswith("{"):
        try:
            raw = ast.literal_eval(stripped)
        except (ValueError, SyntaxError) as exc:
            raise ValueError("Invalid class-name mapping literal") from exc
        if not isinstance(raw, dict):
            raise ValueError("Class-name mapping must be a dict")
        return {int(k): str(v) for k, v in raw.items()}

    names: Dict[int, str] = {}
    in_names = False
    for raw_line in text.splitlines():
        line = raw_line.strip()
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
            # Next top-level key ends the block.
            if not raw_line.startswith((" ", "\t")):
                in_names = False
            continue
        names[int(left)] = right.strip().strip("'").strip('"')

    return names


def load_class_names(metadata_path: Union[str, Path]) -> Dict[int, str]:
    return parse_class_names(Path(metadata_path).read_text(encoding="utf-8"))


def class_names_from_model_metadata(metadata: Mapping[str, str]) -> Dict[int, str]:
    """Class names from an engine's custom metadata map (empty if absent)."""
    text = metadata.get("names")
    if not text:
        return {}
    return parse_class_names(text)
