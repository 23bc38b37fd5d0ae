"""Filesystem enumeration helpers."""

import os
from pathlib import Path

# Version-control metadata directories that are never locked
VCS_DIRS: frozenset[str] = frozenset({".git", ".jj"})


def collect_files(root: str | Path) -> list[str]:
    """Collect every regular file beneath a directory.

    Version-control metadata directories (.git, .jj) are pruned from the
    walk. Symlinked directories are not followed.

    Args:
        root: Directory to enumerate.

    Returns:
        Sorted list of absolute file paths.

    Raises:
        OSError: If the root directory cannot be read.
    """
    root_path = Path(root).absolute()
    files: list[str] = []

    def _raise(error: OSError) -> None:
        raise error

    for dirpath, dirnames, filenames in os.walk(root_path, onerror=_raise):
        dirnames[:] = [d for d in dirnames if d not in VCS_DIRS]
        for name in filenames:
            full = os.path.join(dirpath, name)
            if os.path.isfile(full):
                files.append(full)

    files.sort()
    return files


def is_within(path: str, ancestor: str) -> bool:
    """Check whether path equals ancestor or lies beneath it.

    This is a string comparison on separator boundaries; "/a/bc" is not
    within "/a/b".

    Args:
        path: Candidate path.
        ancestor: Possible ancestor path.

    Returns:
        True if path == ancestor or path starts with ancestor + separator.
    """
    if path == ancestor:
        return True
    prefix = ancestor if ancestor.endswith(os.sep) else ancestor + os.sep
    return path.startswith(prefix)


def in_vcs_dir(path: str) -> bool:
    """Check whether any component of path is a VCS metadata directory."""
    return any(part in VCS_DIRS for part in Path(path).parts)
