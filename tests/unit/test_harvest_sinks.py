from __future__ import annotations

import json

from jobharvest.models import JobRecord, LinkRecord
from jobharvest.sinks import InMemorySink, JsonlSink


def test_in_memory_sink_keys_by_url():
    sink = InMemorySink()
    record = JobRecord(url="https://dubai.dubizzle.com/jobs/a/1", title="Driver")

    assert sink.write(record) == "inserted"
    assert sink.write(JobRecord(url=record.url, title="Other")) == "skipped"
    assert sink.items[record.url].title == "Driver"


def test_jsonl_sink_appends_and_skips_urls_from_previous_runs(tmp_path):
    path = tmp_path / "out" / "jobs.jsonl"

    first = JsonlSink(str(path))
    record = JobRecord(url="https://dubai.dubizzle.com/jobs/a/1", title="Driver", company="Acme")
    assert first.write(record) == "inserted"
    assert first.write(LinkRecord(url="https://dubai.dubizzle.com/jobs/a/2")) == "inserted"
    first.close()

    second = JsonlSink(str(path))
    assert second.write(LinkRecord(url="https://dubai.dubizzle.com/jobs/a/1")) == "skipped"
    assert second.write(LinkRecord(url="https://dubai.dubizzle.com/jobs/a/3")) == "inserted"
    second.close()

    rows = [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]
    assert [row["url"] for row in rows] == [
        "https://dubai.dubizzle.com/jobs/a/1",
        "https://dubai.dubizzle.com/jobs/a/2",
        "https://dubai.dubizzle.com/jobs/a/3",
    ]
    assert rows[0]["company"] == "Acme"
    assert rows[0]["description_text"] is None
    assert rows[1] == {"url": "https://dubai.dubizzle.com/jobs/a/2"}


def test_jsonl_sink_ignores_corrupt_lines(tmp_path):
    path = tmp_path / "jobs.jsonl"
    path.write_text('{"url": "https://dubai.dubizzle.com/jobs/a/1"}\nnot json\n\n', encoding="utf-8")

    sink = JsonlSink(str(path))
    try:
        assert sink.write(LinkRecord(url="https://dubai.dubizzle.com/jobs/a/1")) == "skipped"
    finally:
        sink.close()


def test_sinks_report_stored_urls(tmp_path):
    path = tmp_path / "jobs.jsonl"
    path.write_text('{"url": "https://dubai.dubizzle.com/jobs/a/1"}\n', encoding="utf-8")

    jsonl = JsonlSink(str(path))
    memory = InMemorySink()
    try:
        assert jsonl.has("https://dubai.dubizzle.com/jobs/a/1")
        assert not jsonl.has("https://dubai.dubizzle.com/jobs/a/2")
        assert not memory.has("https://dubai.dubizzle.com/jobs/a/2")
        memory.write(LinkRecord(url="https://dubai.dubizzle.com/jobs/a/2"))
        assert memory.has("https://dubai.dubizzle.com/jobs/a/2")
    finally:
        jsonl.close()
