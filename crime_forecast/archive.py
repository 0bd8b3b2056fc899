"""
crime_forecast/archive.py
-------------------------
Reads the uploaded zip of police.uk monthly files.

  iter_csv_entries() – yields (entry name, decoded text) for every data
                       entry whose name ends with the profile suffix.
  archive_tree()     – renders the archive's directory layout as ASCII
                       art for the structure viewer.

The police.uk bulk download nests one folder per month:

    2023-01/2023-01-metropolitan-street.csv
    2023-01/2023-01-metropolitan-outcomes.csv
    2023-02/...

Archives zipped on macOS also carry __MACOSX/ folders and "._" resource
forks; those are never treated as data.
"""

import io
import os
import zipfile
from typing import Iterator

from crime_forecast.errors import ArchiveError


def _open(source) -> zipfile.ZipFile:
    if isinstance(source, (bytes, bytearray)):
        source = io.BytesIO(source)
    try:
        return zipfile.ZipFile(source)
    except (zipfile.BadZipFile, zipfile.LargeZipFile, OSError) as e:
        raise ArchiveError(f"Could not open archive: {e}") from e


def _is_resource_fork(name: str) -> bool:
    parts = name.split("/")
    return "__MACOSX" in parts or parts[-1].startswith("._")


def iter_csv_entries(source, suffix: str = "-street.csv") -> Iterator[tuple[str, str]]:
    """
    Yield (name, text) for matching entries in archive order.

    Args:
        source: Archive bytes, a filesystem path, or a binary file
                object (e.g. a Streamlit UploadedFile).
        suffix: Only entries whose name ends with this are yielded.

    Raises:
        ArchiveError: if the archive cannot be opened or an entry
                      cannot be decompressed or decoded.
    """
    with _open(source) as zf:
        for info in zf.infolist():
            if info.is_dir() or _is_resource_fork(info.filename):
                continue
            if not info.filename.endswith(suffix):
                continue
            try:
                raw = zf.read(info)
                text = raw.decode("utf-8-sig")
            except (zipfile.BadZipFile, UnicodeDecodeError, OSError, RuntimeError) as e:
                raise ArchiveError(f"Could not read {info.filename}: {e}") from e
            yield info.filename, text


def list_entries(source) -> list[tuple[str, int]]:
    """(name, uncompressed size) for every entry, directories included."""
    with _open(source) as zf:
        return [
            (info.filename, info.file_size)
            for info in zf.infolist()
            if not _is_resource_fork(info.filename)
        ]


# ── Directory tree ────────────────────────────────────────────────

class TreeNode:

    def __init__(self, name: str, size: int | None = None):
        self.name = name
        self.size = size
        self.children: dict[str, "TreeNode"] = {}

    @property
    def is_file(self) -> bool:
        return self.size is not None and not self.children

    def child(self, name: str) -> "TreeNode":
        if name not in self.children:
            self.children[name] = TreeNode(name)
        return self.children[name]

    def __repr__(self):
        return f"TreeNode({self.name!r}, children={len(self.children)})"


def build_tree(entries) -> TreeNode:
    """
    Build a tree from entry paths. Each item is either a path string or
    a (path, size) pair; sizes are kept on file nodes. Children keep
    the order in which they were first seen.
    """
    root = TreeNode("")
    for entry in entries:
        path, size = (entry, None) if isinstance(entry, str) else entry
        parts = [p for p in path.split("/") if p]
        if not parts:
            continue
        node = root
        for part in parts[:-1]:
            node = node.child(part)
        leaf = node.child(parts[-1])
        if not path.endswith("/"):
            leaf.size = size if size is not None else 0
    return root


def render_tree(root: TreeNode, root_name: str = "") -> str:
    """
    Render a tree as ├── / └── / │ ASCII art, one node per line.
    Walks the tree with an explicit stack so deep archives are fine.
    """
    lines = [root_name or root.name or "."]
    stack = [(child, "", i == len(root.children) - 1)
             for i, child in enumerate(root.children.values())]
    stack.reverse()

    while stack:
        node, prefix, last = stack.pop()
        lines.append(f"{prefix}{'└── ' if last else '├── '}{node.name}")
        child_prefix = prefix + ("    " if last else "│   ")
        children = list(node.children.values())
        for i in range(len(children) - 1, -1, -1):
            stack.append((children[i], child_prefix, i == len(children) - 1))

    return "\n".join(lines)


def archive_tree(source, root_name: str | None = None) -> str:
    """
    ASCII tree of an archive. root_name defaults to the file name when
    source is a path or has a .name attribute.
    """
    if root_name is None:
        name = source if isinstance(source, (str, os.PathLike)) else getattr(source, "name", "")
        root_name = os.path.basename(str(name)) if name else "archive.zip"
    return render_tree(build_tree(list_entries(source)), root_name)
