"""Tests for session construction and curl header import."""

import threading
import unittest
from unittest import mock

import requests

from pagecrawl.transport import RequestProfile, SessionFactory, parse_curl_headers

CURL = (
    "curl 'https://example.com/api?x=1' "
    "-H 'accept: text/html' "
    "-H 'cookie: sid=abc; theme=dark' "
    "-b 'extra=1' "
    "--data-raw '{\"a\": 1}'"
)


class TestParseCurlHeaders(unittest.TestCase):
    def test_headers_and_cookies(self):
        headers, cookies = parse_curl_headers(CURL)
        self.assertEqual(headers, {"accept": "text/html"})
        self.assertEqual(cookies, {"sid": "abc", "theme": "dark", "extra": "1"})

    def test_rejects_non_curl(self):
        with self.assertRaises(ValueError):
            parse_curl_headers("wget https://example.com")


class TestSessionFactory(unittest.TestCase):
    def test_requests_session_carries_profile(self):
        profile = RequestProfile.from_curl(CURL)
        session = SessionFactory(profile, user_agent="pagecrawl-test").create()
        self.assertIsInstance(session, requests.Session)
        self.assertEqual(session.headers["User-Agent"], "pagecrawl-test")
        self.assertEqual(session.headers["accept"], "text/html")
        self.assertEqual(session.cookies.get("sid"), "abc")

    def test_one_session_per_thread(self):
        factory = SessionFactory()
        main_session = factory()
        self.assertIs(factory(), main_session)

        other = []
        t = threading.Thread(target=lambda: other.append(factory()))
        t.start()
        t.join()
        self.assertIsNot(other[0], main_session)

    def test_impersonation_uses_curl_cffi(self):
        profile = RequestProfile(headers={"accept": "text/html"}, impersonate="chrome120")
        with mock.patch("pagecrawl.transport.curl_requests.Session") as curl_session:
            SessionFactory(profile).create()
        kwargs = curl_session.call_args.kwargs
        self.assertEqual(kwargs["impersonate"], "chrome120")
        self.assertEqual(kwargs["headers"], {"accept": "text/html"})


if __name__ == "__main__":
    unittest.main()
