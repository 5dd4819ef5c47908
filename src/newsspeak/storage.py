from __future__ import annotations

import logging
import os
import tempfile
import threading
import weakref
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

logger = logging.getLogger("newsspeak")


@dataclass(frozen=True)
class StorageEvent:
    key: str
    old_value: Optional[str]
    new_value: Optional[str]


StorageListener = Callable[[StorageEvent], None]


class KeyValueStorage(ABC):
    """String slots persisted per origin.

    Writes made through one instance are announced to every other instance
    attached to the same backing area, never to the writer itself.
    """

    def __init__(self) -> None:
        self._listeners: List[StorageListener] = []

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    def _write(self, key: str, value: Optional[str]) -> None:
        pass

    @abstractmethod
    def _peers(self) -> Iterable["KeyValueStorage"]:
        pass

    def set(self, key: str, value: str) -> None:
        old = self.get(key)
        self._write(key, value)
        self._announce(StorageEvent(key, old, value))

    def remove(self, key: str) -> None:
        old = self.get(key)
        if old is None:
            return
        self._write(key, None)
        self._announce(StorageEvent(key, old, None))

    def subscribe(self, listener: StorageListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def close(self) -> None:
        pass

    def _announce(self, event: StorageEvent) -> None:
        for peer in list(self._peers()):
            if peer is not self:
                peer._dispatch(event)

    def _dispatch(self, event: StorageEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.error("Storage listener failed for key %s: %s", event.key, e)


class StorageArea:
    """In-memory backing area; storages built on the same area behave like tabs."""

    def __init__(self) -> None:
        self.data: Dict[str, str] = {}
        self.instances: "weakref.WeakSet[MemoryStorage]" = weakref.WeakSet()


class MemoryStorage(KeyValueStorage):
    def __init__(self, area: Optional[StorageArea] = None):
        super().__init__()
        self.area = area or StorageArea()
        self.area.instances.add(self)

    def get(self, key: str) -> Optional[str]:
        return self.area.data.get(key)

    def _write(self, key: str, value: Optional[str]) -> None:
        if value is None:
            self.area.data.pop(key, None)
        else:
            self.area.data[key] = value

    def _peers(self) -> Iterable[KeyValueStorage]:
        return list(self.area.instances)


class _SlotFileHandler(FileSystemEventHandler):
    """Forwards writes made by other processes to the owning storage."""

    def __init__(self, storage: "FileStorage"):
        super().__init__()
        self.storage = storage

    def on_created(self, event: FileSystemEvent) -> None:
        self._forward(event.src_path, event.is_directory)

    def on_modified(self, event: FileSystemEvent) -> None:
        self._forward(event.src_path, event.is_directory)

    def on_deleted(self, event: FileSystemEvent) -> None:
        self._forward(event.src_path, event.is_directory)

    def on_moved(self, event: FileSystemEvent) -> None:
        self._forward(event.src_path, event.is_directory)
        self._forward(event.dest_path, event.is_directory)

    def _forward(self, path, is_directory: bool) -> None:
        if path and not is_directory:
            self.storage._file_changed(os.fsdecode(path))


class FileStorage(KeyValueStorage):
    """One `<key>.json` file per slot under a directory.

    Instances in this process hear about each other's writes directly. With
    `watch=True` a watchdog observer also reports writes made by other
    processes to the slots this instance has used.
    """

    _registry: Dict[str, "weakref.WeakSet[FileStorage]"] = {}
    _registry_lock = threading.Lock()

    def __init__(self, directory: str, watch: bool = False):
        super().__init__()
        self.directory = os.path.realpath(os.path.expanduser(directory))
        os.makedirs(self.directory, exist_ok=True)
        self._lock = threading.Lock()
        self._keys_by_file: Dict[str, str] = {}
        self._known: Dict[str, Optional[str]] = {}
        self._observer: Optional[Observer] = None
        with self._registry_lock:
            self._registry.setdefault(self.directory, weakref.WeakSet()).add(self)
        if watch:
            self.watch()

    def _path(self, key: str) -> str:
        safe = "".join(c if c.isalnum() or c in "-_." else "_" for c in key)
        filename = f"{safe}.json"
        self._keys_by_file[filename] = key
        return os.path.join(self.directory, filename)

    def _read(self, path: str) -> Optional[str]:
        if not os.path.exists(path):
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                return f.read()
        except IOError as e:
            logger.warning("Failed to read storage slot %s: %s", path, e)
            return None

    def get(self, key: str) -> Optional[str]:
        return self._read(self._path(key))

    def _write(self, key: str, value: Optional[str]) -> None:
        path = self._path(key)
        with self._lock:
            if value is None:
                try:
                    os.unlink(path)
                except FileNotFoundError:
                    pass
            else:
                fd, tmp_path = tempfile.mkstemp(dir=self.directory, suffix=".tmp")
                try:
                    with os.fdopen(fd, "w", encoding="utf-8") as f:
                        f.write(value)
                    os.replace(tmp_path, path)
                except BaseException:
                    if os.path.exists(tmp_path):
                        os.unlink(tmp_path)
                    raise
                logger.debug("Wrote storage slot %s", path)
            self._known[key] = value

    def _peers(self) -> Iterable[KeyValueStorage]:
        with self._registry_lock:
            return list(self._registry.get(self.directory, ()))

    def _record(self, key: str, value: Optional[str]) -> Optional[StorageEvent]:
        """Remember the latest value of a slot; an event only when it changed."""
        old = self._known.get(key)
        if key in self._known and old == value:
            return None
        self._known[key] = value
        return StorageEvent(key, old, value)

    def _dispatch(self, event: StorageEvent) -> None:
        with self._lock:
            recorded = self._record(event.key, event.new_value)
        if recorded is not None:
            super()._dispatch(recorded)

    def _file_changed(self, path: str) -> None:
        if os.path.dirname(path) != self.directory:
            return
        key = self._keys_by_file.get(os.path.basename(path))
        if key is None:
            return
        with self._lock:
            event = self._record(key, self._read(path))
        if event is not None:
            logger.debug("Storage slot %s changed on disk", key)
            super()._dispatch(event)

    def watch(self) -> "FileStorage":
        if self._observer is not None:
            return self
        observer = Observer()
        observer.schedule(_SlotFileHandler(self), self.directory, recursive=False)
        observer.daemon = True
        observer.start()
        self._observer = observer
        logger.debug("Watching storage directory %s", self.directory)
        return self

    def close(self) -> None:
        if self._observer is None:
            return
        self._observer.stop()
        self._observer.join(timeout=2)
        self._observer = None
