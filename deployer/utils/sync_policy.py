"""
Sync Policy
===========
Decides how a build output directory is merged into the target branch
working tree.

Rules:
    - Paths produced by the build are "managed": copied over, overwriting.
    - Paths present only in the target are "externally owned":
        keep_files=True  → preserved untouched (e.g. CNAME)
        keep_files=False → deleted
    - Target paths whose type clashes with the build (file vs directory)
      are removed so the build output can take their place.
    - .git is never managed and never deleted.
    - Paths matching exclude_assets (glob on any path segment or the whole
      relative path) are never copied.

Paths are always repo-relative with forward slashes.
"""
import os
import shutil
import fnmatch
from dataclasses import dataclass, field
from typing import Iterable, List, Set

_GIT_DIR = ".git"


@dataclass
class SyncPlan:
    copy: List[str] = field(default_factory=list)
    delete: List[str] = field(default_factory=list)
    preserved: List[str] = field(default_factory=list)


def _is_excluded(rel_path: str, patterns: Iterable[str]) -> bool:
    parts = rel_path.split("/")
    for pattern in patterns:
        if fnmatch.fnmatch(rel_path, pattern):
            return True
        if any(fnmatch.fnmatch(part, pattern) for part in parts):
            return True
    return False


def list_files(root: str) -> Set[str]:
    """All files under root (relative, forward slashes), skipping .git."""
    found: Set[str] = set()
    if not os.path.isdir(root):
        return found
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = [d for d in dirnames if d != _GIT_DIR]
        for name in filenames:
            rel = os.path.relpath(os.path.join(dirpath, name), root)
            found.add(rel.replace(os.sep, "/"))
    return found


def _parent_dirs(rel_path: str) -> List[str]:
    parts = rel_path.split("/")[:-1]
    return ["/".join(parts[:i]) for i in range(1, len(parts) + 1)]


def _type_clashes(produced: Set[str], existing: Set[str]) -> Set[str]:
    """Target files standing where the build puts a directory, or the reverse."""
    produced_dirs = {d for p in produced for d in _parent_dirs(p)}
    return {
        rel for rel in existing
        if rel in produced_dirs or any(d in produced for d in _parent_dirs(rel))
    }


def plan_sync(output_dir: str, target_dir: str, keep_files: bool = True,
              exclude_assets: Iterable[str] = (".github",)) -> SyncPlan:
    exclude_assets = list(exclude_assets)
    produced = {p for p in list_files(output_dir) if not _is_excluded(p, exclude_assets)}
    existing = list_files(target_dir)

    plan = SyncPlan(copy=sorted(produced))
    clashes = _type_clashes(produced, existing)
    unmanaged = sorted(existing - produced - clashes)
    if keep_files:
        plan.preserved = unmanaged
        plan.delete = sorted(clashes)
    else:
        plan.delete = sorted(set(unmanaged) | clashes)
    return plan


def apply_sync(plan: SyncPlan, output_dir: str, target_dir: str) -> None:
    for rel in plan.delete:
        path = os.path.join(target_dir, *rel.split("/"))
        if os.path.lexists(path):
            os.remove(path)
    _prune_empty_dirs(target_dir)

    for rel in plan.copy:
        src = os.path.join(output_dir, *rel.split("/"))
        dst = os.path.join(target_dir, *rel.split("/"))
        os.makedirs(os.path.dirname(dst), exist_ok=True)
        shutil.copy2(src, dst)


def _prune_empty_dirs(root: str) -> None:
    for dirpath, dirnames, filenames in os.walk(root, topdown=False):
        if dirpath == root or _GIT_DIR in dirpath.split(os.sep):
            continue
        if not os.listdir(dirpath):
            os.rmdir(dirpath)
