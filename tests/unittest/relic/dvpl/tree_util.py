import os
from pathlib import Path
from typing import Dict


def write_tree(root: Path, files: Dict[str, bytes]) -> Dict[str, Path]:
    """Create files below root; keys are '/' separated relative paths."""
    paths = {}
    for name, data in files.items():
        path = root.joinpath(*name.split("/"))
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        paths[name] = path
    return paths


def list_tree(root: Path) -> Dict[str, bytes]:
    """Read every regular file below root; symlinks are left out."""
    result = {}
    for dirpath, _, filenames in os.walk(root):
        for name in filenames:
            path = Path(dirpath) / name
            if path.is_symlink():
                continue
            result[path.relative_to(root).as_posix()] = path.read_bytes()
    return result
