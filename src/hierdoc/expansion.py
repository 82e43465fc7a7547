"""
Expansion state: which paths of a tree are expanded or collapsed.

Independent of the Node tree itself; keyed by the same dot paths the
document model resolves. A path is expanded when it was explicitly
expanded, collapsed when it was explicitly collapsed, and otherwise follows
the baseline (default_expanded, or collapsed after collapse_all()).
The root path "" is always expanded.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Iterable, MutableMapping
from typing import Any

from .config import Config, get_config
from .dom import Node, iter_paths, path_depth, split_path

logger = logging.getLogger(__name__)

EVENTS = ("expand", "collapse", "change")

Listener = Callable[[Any], None]


def _is_root(path: str) -> bool:
    return path in ("", ".")


def _is_descendant(path: str, ancestor: str) -> bool:
    return path.startswith(ancestor + ".")


class ExpansionState:
    """Path-keyed expanded/collapsed flags with change events and persistence."""

    def __init__(
        self,
        default_expanded: bool | None = None,
        max_depth: int | None = None,
        initial_expanded: Iterable[str] = (),
        persist_key: str | None = None,
        store: MutableMapping[str, str] | None = None,
        config: Config | None = None,
    ):
        cfg = (config or get_config()).expansion
        self.default_expanded = cfg.default_expanded if default_expanded is None else default_expanded
        self.max_depth = cfg.max_depth if max_depth is None else max_depth
        self.expanded: set[str] = set(initial_expanded)
        self.collapsed: set[str] = set()
        self._baseline = self.default_expanded
        self._listeners: dict[str, list[Listener]] = {event: [] for event in EVENTS}

        self.persist_key = persist_key
        self.store = store if store is not None else {}
        if persist_key:
            self._load_persisted_state()

    # --- Queries ---------------------------------------------------------

    def is_expanded(self, path: str) -> bool:
        if _is_root(path):
            return True
        if path in self.collapsed:
            return False
        if path in self.expanded:
            return True
        return self._baseline

    @property
    def expanded_paths(self) -> list[str]:
        return sorted(self.expanded)

    def stats(self) -> dict[str, Any]:
        return {
            "expanded": len(self.expanded),
            "collapsed": len(self.collapsed),
            "default_expanded": self.default_expanded,
            "all_collapsed": not self._baseline,
        }

    # --- Single paths ----------------------------------------------------

    def expand(self, path: str) -> None:
        if _is_root(path):
            return
        was_expanded = self.is_expanded(path)
        self.collapsed.discard(path)
        self.expanded.add(path)
        if not was_expanded:
            self._emit("expand", path)
            self._changed({"action": "expand", "path": path})

    def collapse(self, path: str) -> None:
        """Collapse a path; expanded descendants are forgotten too."""
        if _is_root(path):
            return
        was_expanded = self.is_expanded(path)
        self.expanded = {p for p in self.expanded if p != path and not _is_descendant(p, path)}
        self.collapsed.add(path)
        if was_expanded:
            self._emit("collapse", path)
            self._changed({"action": "collapse", "path": path})

    def toggle(self, path: str) -> bool:
        """Flip a path; returns the new state."""
        if self.is_expanded(path):
            self.collapse(path)
            return _is_root(path)
        self.expand(path)
        return True

    def expand_path(self, path: str) -> None:
        """Expand path and every ancestor on the way to it."""
        segments = split_path(path)
        for i in range(1, len(segments) + 1):
            prefix = ".".join(segments[:i])
            self.collapsed.discard(prefix)
            self.expanded.add(prefix)
        self._changed({"action": "expand_path", "path": path})

    # --- Whole trees -----------------------------------------------------

    def expand_all(self, root: Node) -> None:
        """Expand every path in root that has children, down to max_depth."""
        self.collapsed.clear()
        self._baseline = self.default_expanded
        for path, node, _ in iter_paths(root, self.max_depth):
            if path and node.children:
                self.expanded.add(path)
        self._changed({"action": "expand_all"})

    def collapse_all(self) -> None:
        self.expanded.clear()
        self.collapsed.clear()
        self._baseline = False
        self._changed({"action": "collapse_all"})

    def expand_to_depth(self, root: Node, depth: int) -> None:
        """Collapse everything, then expand paths with children no deeper than depth."""
        if depth < 0:
            raise ValueError(f"depth must be >= 0, got {depth}")
        self.expanded.clear()
        self.collapsed.clear()
        self._baseline = False
        for path, node, _ in iter_paths(root, min(depth, self.max_depth)):
            if path and node.children and path_depth(path) <= depth:
                self.expanded.add(path)
        self._changed({"action": "expand_to_depth", "depth": depth})

    def set_expanded_paths(self, paths: Iterable[str]) -> None:
        self.expanded = set(paths)
        self.collapsed.clear()
        self._changed({"action": "set_paths"})

    def reset(self) -> None:
        """Forget every explicit choice and return to the default baseline."""
        self.expanded.clear()
        self.collapsed.clear()
        self._baseline = self.default_expanded
        self._changed({"action": "reset"})

    # --- Snapshots -------------------------------------------------------

    def save_state(self) -> dict[str, Any]:
        return {
            "expanded": sorted(self.expanded),
            "collapsed": sorted(self.collapsed),
            "default_expanded": self._baseline,
        }

    def restore_state(self, snapshot: dict[str, Any]) -> None:
        """Restore from save_state() output; only "expanded" is required."""
        if not isinstance(snapshot, dict):
            raise ValueError(f"Expansion snapshot must be a mapping, got {type(snapshot).__name__}")
        expanded = self._path_list(snapshot, "expanded", required=True)
        collapsed = self._path_list(snapshot, "collapsed", required=False)
        baseline = snapshot.get("default_expanded", self.default_expanded)
        if not isinstance(baseline, bool):
            raise ValueError("Expansion snapshot 'default_expanded' must be a bool")

        self.expanded = set(expanded)
        self.collapsed = set(collapsed)
        self._baseline = baseline
        self._changed({"action": "restore"})

    @staticmethod
    def _path_list(snapshot: dict[str, Any], key: str, required: bool) -> list[str]:
        if key not in snapshot:
            if required:
                raise ValueError(f"Expansion snapshot is missing {key!r}")
            return []
        paths = snapshot[key]
        if not isinstance(paths, list) or not all(isinstance(p, str) for p in paths):
            raise ValueError(f"Expansion snapshot {key!r} must be a list of paths")
        return paths

    # --- Persistence -----------------------------------------------------

    def _persist(self) -> None:
        if self.persist_key:
            self.store[self.persist_key] = json.dumps(self.save_state())

    def _load_persisted_state(self) -> None:
        text = self.store.get(self.persist_key)
        if not text:
            return
        try:
            self.restore_state(json.loads(text))
        except ValueError as e:
            logger.warning("Ignoring corrupt expansion state under %r: %s", self.persist_key, e)

    def clear_persisted_state(self) -> None:
        if self.persist_key:
            self.store.pop(self.persist_key, None)

    # --- Events ----------------------------------------------------------

    def on(self, event: str, callback: Listener) -> None:
        if event not in self._listeners:
            raise ValueError(f"Unknown expansion event: {event!r}")
        self._listeners[event].append(callback)

    def off(self, event: str, callback: Listener) -> None:
        listeners = self._listeners.get(event, [])
        if callback in listeners:
            listeners.remove(callback)

    def _emit(self, event: str, payload: Any) -> None:
        for callback in list(self._listeners[event]):
            try:
                callback(payload)
            except Exception:
                logger.exception("Expansion listener failed on %r", event)

    def _changed(self, payload: dict[str, Any]) -> None:
        self._emit("change", payload)
        self._persist()
