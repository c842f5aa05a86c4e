from __future__ import annotations

import json
import os
import threading
from typing import Dict, Literal, Set, Union

from jobharvest.models import JobRecord, LinkRecord

OutputRecord = Union[JobRecord, LinkRecord]
WriteAction = Literal["inserted", "skipped"]


class JobSink:
    def has(self, url: str) -> bool:
        """True when a record for `url` is already stored."""
        return False

    def write(self, record: OutputRecord) -> WriteAction:
        raise NotImplementedError

    def close(self) -> None:
        return None


class InMemorySink(JobSink):
    def __init__(self) -> None:
        self.items: Dict[str, OutputRecord] = {}
        self._lock = threading.Lock()

    def has(self, url: str) -> bool:
        with self._lock:
            return url in self.items

    def write(self, record: OutputRecord) -> WriteAction:
        with self._lock:
            if record.url in self.items:
                return "skipped"
            self.items[record.url] = record
            return "inserted"


class JsonlSink(JobSink):
    """Append-only JSONL dataset keyed by record url.

    Urls already present in an existing file are skipped, so a re-run only
    appends new postings.
    """

    def __init__(self, path: str) -> None:
        self._path = path
        self._lock = threading.Lock()
        self._urls: Set[str] = set()
        self._load_existing()
        os.makedirs(os.path.dirname(self._path) or ".", exist_ok=True)
        self._fh = open(self._path, "a", encoding="utf-8")

    def _load_existing(self) -> None:
        if not os.path.exists(self._path):
            return
        with open(self._path, "r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    obj = json.loads(line)
                except json.JSONDecodeError:
                    continue
                url = obj.get("url") if isinstance(obj, dict) else None
                if isinstance(url, str):
                    self._urls.add(url)

    def has(self, url: str) -> bool:
        with self._lock:
            return url in self._urls

    def write(self, record: OutputRecord) -> WriteAction:
        with self._lock:
            if record.url in self._urls:
                return "skipped"
            self._fh.write(json.dumps(record.as_dict(), ensure_ascii=False, sort_keys=True))
            self._fh.write("\n")
            self._fh.flush()
            self._urls.add(record.url)
            return "inserted"

    def close(self) -> None:
        with self._lock:
            if not self._fh.closed:
                self._fh.close()


class StdoutSink(JobSink):
    def __init__(self) -> None:
        self.count = 0

    def write(self, record: OutputRecord) -> WriteAction:
        print(json.dumps(record.as_dict(), ensure_ascii=False, sort_keys=True))
        self.count += 1
        return "inserted"
