"""Tests for CrawlPolicy deny patterns and robots.txt handling."""

import unittest

import requests

from pagecrawl.policy import CrawlPolicy, load_robots

ROBOTS = """
User-agent: *
Disallow: /cgi-bin/
Disallow: /search
"""


class FakeResponse:
    def __init__(self, status_code, text=""):
        self.status_code = status_code
        self.text = text


class RobotsSession:
    def __init__(self, responses):
        self._responses = responses
        self.calls = []

    def get(self, url, timeout=None):
        self.calls.append(url)
        outcome = self._responses[url]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class TestDenyPatterns(unittest.TestCase):
    def test_prefix_pattern(self):
        policy = CrawlPolicy(["/private"])
        self.assertTrue(policy.is_excluded("https://example.com/private/data.html"))
        self.assertFalse(policy.is_excluded("https://example.com/public/data.html"))

    def test_glob_pattern_matches_path(self):
        policy = CrawlPolicy(["/players/*/gamelog*"])
        self.assertTrue(policy.is_excluded("https://example.com/players/j/gamelog/2020"))
        self.assertFalse(policy.is_excluded("https://example.com/players/j/index.html"))

    def test_glob_pattern_sees_query(self):
        policy = CrawlPolicy(["*?q=*"])
        self.assertTrue(policy.is_excluded("https://example.com/search?q=nba"))

    def test_reason_names_the_pattern(self):
        policy = CrawlPolicy(["/private"])
        self.assertIn("/private", policy.exclusion_reason("https://example.com/private"))

    def test_blank_patterns_are_ignored(self):
        policy = CrawlPolicy(["", "  "])
        self.assertEqual(policy.deny_patterns, ())
        self.assertIsNone(policy.exclusion_reason("https://example.com/anything"))


class TestRobots(unittest.TestCase):
    def test_robots_rules_apply_per_host(self):
        policy = CrawlPolicy()
        policy.add_robots("example.com", ROBOTS)
        self.assertEqual(policy.exclusion_reason("https://example.com/cgi-bin/x"), "disallowed by robots.txt")
        self.assertTrue(policy.is_excluded("https://example.com/search?q=1"))
        self.assertFalse(policy.is_excluded("https://example.com/leagues/"))
        self.assertFalse(policy.is_excluded("https://other.com/cgi-bin/x"))

    def test_load_robots_fetches_once_per_host(self):
        session = RobotsSession({
            "https://example.com/robots.txt": FakeResponse(200, ROBOTS),
            "https://other.com/robots.txt": FakeResponse(404),
        })
        policy = load_robots(
            CrawlPolicy(),
            ["https://example.com/a", "https://example.com/b", "https://other.com/cgi-bin/x"],
            session=session,
        )
        self.assertEqual(len(session.calls), 2)
        self.assertTrue(policy.is_excluded("https://example.com/cgi-bin/y"))
        self.assertFalse(policy.is_excluded("https://other.com/cgi-bin/x"))

    def test_robots_fetch_error_leaves_host_unrestricted(self):
        session = RobotsSession({"https://example.com/robots.txt": requests.exceptions.ConnectionError("down")})
        policy = load_robots(CrawlPolicy(), ["https://example.com/cgi-bin/x"], session=session)
        self.assertFalse(policy.is_excluded("https://example.com/cgi-bin/x"))

    def test_load_robots_skips_malformed_urls(self):
        session = RobotsSession({"https://example.com/robots.txt": FakeResponse(200, ROBOTS)})
        load_robots(CrawlPolicy(), ["http://[::1/bad", "https://example.com/a"], session=session)
        self.assertEqual(session.calls, ["https://example.com/robots.txt"])


if __name__ == "__main__":
    unittest.main()
