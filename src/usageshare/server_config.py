import json
import os
import tempfile
import uuid
from typing import Protocol

import structlog

logger = structlog.get_logger()


class JsonConfig(Protocol):
    """
    JsonConfig is a JSON-backed record. data is read and mutated
    in place, write() persists it synchronously.

    Keys used by the publisher:
     - metricsEnabled: the opt-in flag for sharing metrics.
     - serverId: the server identity put on every report.
     - accessKeyDataLimit: present when a per-key data cap is set.
    """

    @property
    def data(self) -> "dict": ...

    def write(self) -> "None": ...


class InMemoryJsonConfig:
    """
    keeps the data in memory only. write() just counts calls.
    """

    def __init__(self, data: "dict | None" = None) -> "None":
        self._data: "dict" = data if data is not None else {}
        self.write_count: "int" = 0

    @property
    def data(self) -> "dict":
        return self._data

    def write(self) -> "None":
        self.write_count += 1


class FileJsonConfig:
    """
    FileJsonConfig loads a JSON object from disk. A missing file
    starts out as an empty object. Writes go through a temporary file
    in the same directory followed by a rename, so readers never see
    a partially written file.

    The file is shared with other processes, so data is reloaded
    whenever the file changed on disk since it was last read or
    written. Unsaved in-memory changes are lost on reload, callers
    write() right after mutating.
    """

    def __init__(self, path: "str") -> "None":
        self._path = path
        self._data: "dict" = {}
        self._stamp: "tuple[int, int] | None" = self._file_stamp()
        if self._stamp is None:
            logger.info("config_file_missing", path=path)
            return
        self._data = self._load()

    @property
    def data(self) -> "dict":
        stamp = self._file_stamp()
        if stamp is not None and stamp != self._stamp:
            try:
                self._data = self._load()
            except ValueError:
                # keep the last good copy, retry on the next access
                logger.warning("config_reload_failed", path=self._path, exc_info=True)
            else:
                self._stamp = stamp
                logger.debug("config_reloaded", path=self._path)
        return self._data

    def write(self) -> "None":
        directory = os.path.dirname(os.path.abspath(self._path))
        fd, tmp_path = tempfile.mkstemp(dir=directory, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self._data, f)
            os.replace(tmp_path, self._path)
        except BaseException:
            os.unlink(tmp_path)
            raise
        self._stamp = self._file_stamp()

    def _file_stamp(self) -> "tuple[int, int] | None":
        try:
            st = os.stat(self._path)
        except FileNotFoundError:
            return None
        return (st.st_mtime_ns, st.st_size)

    def _load(self) -> "dict":
        with open(self._path, encoding="utf-8") as f:
            loaded = json.load(f)
        if not isinstance(loaded, dict):
            raise ValueError(f"config file {self._path} does not hold a JSON object")
        return loaded


def ensure_server_id(config: "JsonConfig") -> "str":
    """
    assigns a random serverId on first start and persists it.
    Returns the server id.
    """
    server_id = config.data.get("serverId")
    if not server_id:
        server_id = uuid.uuid4().hex
        config.data["serverId"] = server_id
        config.write()
        logger.info("server_id_created", server_id=server_id)
    return server_id
