import os
import posixpath

ROOT_MARKERS = ("/", "\\")


def resolve(root, current_dir, path):
    """
    Returns the absolute filesystem path for a client path, confined to root.
    A leading slash means "relative to root"; otherwise the path is taken
    relative to current_dir (itself relative to root).
    Raises PermissionError if the normalized path leaves the root.
    """
    root_abs = os.path.normpath(os.path.abspath(root))
    if not path or path in ROOT_MARKERS:
        return root_abs

    if path.startswith(ROOT_MARKERS):
        relative = path.lstrip("/\\")
    else:
        relative = posixpath.join(current_dir or "", path)

    candidate = os.path.normpath(os.path.join(root_abs, relative))
    if candidate != root_abs and not candidate.startswith(root_abs.rstrip(os.sep) + os.sep):
        raise PermissionError("Access outside of server root")
    return candidate


def to_relative(root, abs_path):
    """Converts a confined absolute path back to the session's relative form ('' is root)."""
    rel = os.path.relpath(abs_path, os.path.normpath(os.path.abspath(root)))
    if rel == ".":
        return ""
    return rel.replace(os.sep, "/")


def parent_of(current_dir):
    """Parent of a relative directory; the root's parent is the root."""
    return posixpath.dirname(current_dir.rstrip("/"))


def display_path(current_dir):
    # Clients see the root as "/"
    return "/" + current_dir if current_dir else "/"
