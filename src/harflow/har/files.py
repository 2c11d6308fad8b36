"""Workspace file namespace built from request URLs.

One folder per folder-path segment (see :mod:`harflow.har.urls`), one
``.request`` file per base request inside its leaf folder, and the delta
file nested under its base file.
"""

from __future__ import annotations

import posixpath

from harflow.har.urls import sanitize_name
from harflow.ids import ID, IdSource
from harflow.models import File, FileContentKind, Flow, Http

REQUEST_FILE_SUFFIX = ".request"
DELTA_FILE_SUFFIX = " (Delta)"
FLOW_FILE_ORDER = -1.0


def request_file_name(http: Http) -> str:
    """File name for a base request, e.g. ``GET_Users.request``."""
    return f"{sanitize_name(http.name)}{REQUEST_FILE_SUFFIX}"


def _path_prefixes(folder_path: str) -> list[str]:
    """``/a/b/c`` -> ``["/a", "/a/b", "/a/b/c"]``."""
    prefixes = []
    current = ""
    for segment in folder_path.split("/"):
        if not segment:
            continue
        current = f"{current}/{segment}"
        prefixes.append(current)
    return prefixes


class FileNamespaceBuilder:
    """Accumulate folder, request, and flow files for one translation."""

    def __init__(self, workspace_id: ID, id_source: IdSource) -> None:
        self.workspace_id = workspace_id
        self._new_id = id_source
        self._folder_ids: dict[str, ID] = {}
        self._folder_files: dict[str, File] = {}
        self._content_files: list[File] = []
        self._flow_file: File | None = None

    def ensure_folder(self, folder_path: str, updated_at: int = 0) -> ID | None:
        """Return the id of the folder at ``folder_path``, creating missing ancestors.

        Returns:
            The leaf folder id, or None for the root path ``/``.
        """
        folder_id: ID | None = None
        for prefix in _path_prefixes(folder_path):
            cached = self._folder_ids.get(prefix)
            if cached is not None:
                folder_id = cached
                continue
            parent_path = posixpath.dirname(prefix)
            folder = File(
                id=self._new_id(),
                workspace_id=self.workspace_id,
                parent_id=self._folder_ids.get(parent_path),
                name=posixpath.basename(prefix),
                content_kind=FileContentKind.FOLDER,
                order=0.0,
                updated_at=updated_at,
            )
            self._folder_ids[prefix] = folder.id
            self._folder_files[prefix] = folder
            folder_id = folder.id
        return folder_id

    def add_request(self, base: Http, delta: Http, folder_path: str) -> tuple[File, File]:
        """Add the base request file and its nested delta file."""
        folder_id = self.ensure_folder(folder_path, updated_at=base.updated_at)
        base_file = File(
            id=self._new_id(),
            workspace_id=self.workspace_id,
            parent_id=folder_id,
            content_id=base.id,
            content_kind=FileContentKind.HTTP,
            name=request_file_name(base),
            order=float(base.created_at),
            updated_at=base.updated_at,
        )
        delta_file = File(
            id=self._new_id(),
            workspace_id=self.workspace_id,
            parent_id=base_file.id,
            content_id=delta.id,
            content_kind=FileContentKind.HTTP_DELTA,
            name=base_file.name + DELTA_FILE_SUFFIX,
            order=base_file.order + 1,
            updated_at=delta.updated_at,
        )
        self._content_files.extend((base_file, delta_file))
        return base_file, delta_file

    def add_flow(self, flow: Flow, updated_at: int = 0) -> File:
        """Add the top-level file for the generated flow."""
        self._flow_file = File(
            id=self._new_id(),
            workspace_id=self.workspace_id,
            parent_id=None,
            content_id=flow.id,
            content_kind=FileContentKind.FLOW,
            name=flow.name,
            order=FLOW_FILE_ORDER,
            updated_at=updated_at,
        )
        return self._flow_file

    def folder_id(self, folder_path: str) -> ID | None:
        return self._folder_ids.get(folder_path)

    def _folders_depth_first(self) -> list[File]:
        children: dict[ID | None, list[File]] = {}
        for folder in self._folder_files.values():
            children.setdefault(folder.parent_id, []).append(folder)
        for siblings in children.values():
            siblings.sort(key=lambda f: f.sort_key)

        ordered: list[File] = []
        stack = list(reversed(children.get(None, [])))
        while stack:
            folder = stack.pop()
            ordered.append(folder)
            stack.extend(reversed(children.get(folder.id, [])))
        return ordered

    def files(self) -> list[File]:
        """Flow file first, then folders depth-first, then request files in archive order."""
        result: list[File] = []
        if self._flow_file is not None:
            result.append(self._flow_file)
        result.extend(self._folders_depth_first())
        result.extend(self._content_files)
        return result
