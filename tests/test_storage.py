"""Tests for report writers and the JSONL sink."""

import csv
import json
import os
import tempfile
import unittest

from pagecrawl.models import BatchFailure, BatchReport, ExtractedRecord, FailureReason
from pagecrawl.storage import JsonlStorage, write_failures, write_records


def _report():
    report = BatchReport()
    report.add_records([
        ExtractedRecord(url="https://example.com/1", fields={"Name": "J. Doe", "Pos": "PG"}, index=0),
        ExtractedRecord(url="https://example.com/1", fields={"Name": "A. Roe"}, index=0),
        ExtractedRecord(url="https://example.com/2", fields={"Name": "B. Poe", "Age": "31"}, index=1),
    ])
    report.add_failure(BatchFailure(url="https://example.com/3", reason=FailureReason.NOT_FOUND, detail="HTTP_404", attempts=1, index=2))
    return report


class TestReportWriters(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)

    def _path(self, name):
        return os.path.join(self._tmp.name, name)

    def test_csv_has_union_of_columns_with_source_url_first(self):
        path = self._path("records.csv")
        self.assertEqual(write_records(_report(), path), 3)
        with open(path, encoding="utf-8", newline="") as f:
            reader = csv.DictReader(f)
            rows = list(reader)
        self.assertEqual(reader.fieldnames, ["source_url", "Name", "Pos", "Age"])
        self.assertEqual(rows[1]["Pos"], "")
        self.assertEqual(rows[2]["Age"], "31")

    def test_jsonl_records(self):
        path = self._path("records.jsonl")
        write_records(_report(), path)
        with open(path, encoding="utf-8") as f:
            rows = [json.loads(line) for line in f]
        self.assertEqual(len(rows), 3)
        self.assertEqual(rows[1], {"source_url": "https://example.com/1", "Name": "A. Roe"})

    def test_empty_report_writes_header_only_csv(self):
        path = self._path("empty.csv")
        self.assertEqual(write_records(BatchReport(), path), 0)
        with open(path, encoding="utf-8") as f:
            self.assertEqual(f.read().strip(), "source_url")

    def test_failures_jsonl(self):
        path = self._path("failures.jsonl")
        self.assertEqual(write_failures(_report(), path), 1)
        with open(path, encoding="utf-8") as f:
            row = json.loads(f.readline())
        self.assertEqual(row["reason"], "NotFound")
        self.assertEqual(row["url"], "https://example.com/3")


class TestJsonlStorage(unittest.TestCase):
    def test_background_writer_flushes_on_close(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "stream.jsonl")
            storage = JsonlStorage(path)
            report = _report()
            for rec in report.records:
                storage.write(rec)
            storage.write(report.failures[0])
            storage.close()
            with open(path, encoding="utf-8") as f:
                lines = [json.loads(line) for line in f]
        self.assertEqual([l["type"] for l in lines], ["record", "record", "record", "failure"])
        self.assertEqual(lines[0]["fields"]["Name"], "J. Doe")
        self.assertEqual(lines[3]["reason"], "NotFound")


if __name__ == "__main__":
    unittest.main()
