"""Tests for data model classes."""

import unittest

from pagecrawl.models import (
    BatchFailure,
    BatchReport,
    ConfigurationError,
    ExtractedRecord,
    ExtractionKind,
    ExtractionSpec,
    FailureReason,
    FetchRequest,
)


class TestFetchRequest(unittest.TestCase):
    """Verify FetchRequest defaults and immutability."""

    def test_defaults_to_zero_attempts(self):
        self.assertEqual(FetchRequest(url="https://example.com").attempt, 0)

    def test_is_immutable(self):
        req = FetchRequest(url="https://example.com")
        with self.assertRaises(AttributeError):
            req.url = "https://other.com"

    def test_next_attempt_returns_new_request(self):
        req = FetchRequest(url="https://example.com")
        nxt = req.next_attempt()
        self.assertEqual(nxt.attempt, 1)
        self.assertEqual(req.attempt, 0)
        self.assertEqual(nxt.url, req.url)


class TestFailureReason(unittest.TestCase):
    def test_only_timeout_and_server_error_are_transient(self):
        transient = {r for r in FailureReason if r.is_transient}
        self.assertEqual(transient, {FailureReason.TIMEOUT, FailureReason.SERVER_ERROR})


class TestExtractionSpec(unittest.TestCase):
    """Verify ExtractionSpec construction and validation."""

    def test_text_spec_uses_text_field(self):
        spec = ExtractionSpec.text("h1")
        self.assertEqual(spec.kind, ExtractionKind.TEXT)
        self.assertEqual(spec.output_field, "text")

    def test_attribute_spec_names_field_after_attribute(self):
        spec = ExtractionSpec.attr("a", "href")
        self.assertEqual(spec.kind, ExtractionKind.ATTRIBUTE)
        self.assertEqual(spec.output_field, "href")

    def test_custom_field_name(self):
        self.assertEqual(ExtractionSpec.attr("a", "href", field="link").output_field, "link")

    def test_attribute_kind_requires_name(self):
        with self.assertRaises(ConfigurationError):
            ExtractionSpec(selector="a", kind=ExtractionKind.ATTRIBUTE)

    def test_empty_selector_rejected(self):
        with self.assertRaises(ConfigurationError):
            ExtractionSpec.text("  ")

    def test_configuration_error_is_value_error(self):
        self.assertTrue(issubclass(ConfigurationError, ValueError))

    def test_is_immutable(self):
        spec = ExtractionSpec.table()
        with self.assertRaises(AttributeError):
            spec.selector = "div"


class TestBatchReport(unittest.TestCase):
    """Verify BatchReport accumulation helpers."""

    def _report(self):
        report = BatchReport()
        report.add_records([
            ExtractedRecord(url="https://b.example", fields={"x": "1"}, index=1),
            ExtractedRecord(url="https://b.example", fields={"x": "2"}, index=1),
        ])
        report.add_failure(BatchFailure(url="https://c.example", reason=FailureReason.TIMEOUT, index=2))
        report.add_records([ExtractedRecord(url="https://a.example", fields={"x": "0"}, index=0)])
        report.add_failure(BatchFailure(url="https://d.example", reason=FailureReason.NOT_FOUND, index=3))
        return report

    def test_record_urls_are_distinct(self):
        self.assertEqual(self._report().record_urls(), ["https://b.example", "https://a.example"])

    def test_sort_by_input_is_stable(self):
        report = self._report()
        report.sort_by_input()
        self.assertEqual([r.fields["x"] for r in report.records], ["0", "1", "2"])
        self.assertEqual(report.failed_urls(), ["https://c.example", "https://d.example"])

    def test_retryable_urls_only_transient(self):
        self.assertEqual(self._report().retryable_urls(), ["https://c.example"])

    def test_rows_carry_source_url(self):
        rows = self._report().rows()
        self.assertEqual(rows[0], {"source_url": "https://b.example", "x": "1"})

    def test_reason_counts(self):
        self.assertEqual(self._report().reason_counts(), {"Timeout": 1, "NotFound": 1})

    def test_failure_to_dict_uses_reason_value(self):
        failure = BatchFailure(url="u", reason=FailureReason.POLICY_EXCLUDED, detail="d", attempts=0, index=4)
        self.assertEqual(failure.to_dict()["reason"], "PolicyExcluded")
        self.assertEqual(failure.to_dict()["index"], 4)


if __name__ == "__main__":
    unittest.main()
