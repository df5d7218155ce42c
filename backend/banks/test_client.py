import json
from io import BytesIO
from unittest.mock import MagicMock, patch
from urllib.error import HTTPError, URLError

from django.test import SimpleTestCase

from .client import BankClientError, BankLookupClient, IbanResolver


COMMERZBANK_IBAN = "DE89370400440532013000"
HASPA_IBAN = "DE34200505501234567890"
BUNDESBANK_IBAN = "DE98100000000532013000"


class FakeTimer:
    def __init__(self, interval, function, args=()):
        self.interval = interval
        self.function = function
        self.args = args
        self.daemon = False
        self.started = False
        self.cancelled = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        self.function(*self.args)


class FakeClient:
    def __init__(self, during_request=None):
        self.calls = []
        self.during_request = during_request
        self.error = None

    def lookup_iban(self, iban):
        self.calls.append(iban)
        if self.during_request is not None:
            hook, self.during_request = self.during_request, None
            hook()
        if self.error is not None:
            raise self.error
        return {"success": True, "found": True, "iban": iban}


class IbanResolverTests(SimpleTestCase):
    def setUp(self):
        self.timers = []
        self.results = []
        self.errors = []
        self.client = FakeClient()
        self.resolver = IbanResolver(
            self.client,
            lambda iban, result: self.results.append((iban, result)),
            on_error=lambda iban, exc: self.errors.append((iban, exc)),
            debounce_seconds=0.3,
            timer_factory=self._timer,
        )

    def _timer(self, interval, function, args=()):
        timer = FakeTimer(interval, function, args)
        self.timers.append(timer)
        return timer

    def test_valid_input_is_debounced(self):
        self.resolver.on_input("de89 3704 0044 0532 0130 00")
        self.assertEqual(self.resolver.state, IbanResolver.PENDING)
        self.assertEqual(len(self.timers), 1)
        self.assertEqual(self.timers[0].interval, 0.3)
        self.assertTrue(self.timers[0].started)
        self.assertTrue(self.timers[0].daemon)
        self.assertEqual(self.client.calls, [])

        self.timers[0].fire()
        self.assertEqual(self.client.calls, [COMMERZBANK_IBAN])
        self.assertEqual(self.results[0][0], COMMERZBANK_IBAN)
        self.assertEqual(self.resolver.state, IbanResolver.IDLE)

    def test_invalid_input_never_reaches_the_client(self):
        for value in ("", None, "DE8937040044", "DE88370400440532013000"):
            with self.subTest(value=value):
                self.resolver.on_input(value)
                self.assertEqual(self.resolver.state, IbanResolver.IDLE)
        self.assertEqual(self.timers, [])

    def test_new_input_restarts_the_debounce(self):
        self.resolver.on_input(COMMERZBANK_IBAN)
        self.resolver.on_input(HASPA_IBAN)
        self.assertTrue(self.timers[0].cancelled)

        # A timer that fires after being superseded is ignored.
        self.timers[0].fire()
        self.assertEqual(self.client.calls, [])

        self.timers[1].fire()
        self.assertEqual(self.client.calls, [HASPA_IBAN])
        self.assertEqual([iban for iban, _ in self.results], [HASPA_IBAN])

    def test_invalid_input_cancels_pending_lookup(self):
        self.resolver.on_input(COMMERZBANK_IBAN)
        self.resolver.on_input("DE89")
        self.assertTrue(self.timers[0].cancelled)
        self.timers[0].fire()
        self.assertEqual(self.client.calls, [])

    def test_cancel(self):
        self.resolver.on_input(COMMERZBANK_IBAN)
        self.resolver.cancel()
        self.assertTrue(self.timers[0].cancelled)
        self.assertEqual(self.resolver.state, IbanResolver.IDLE)
        self.timers[0].fire()
        self.assertEqual(self.results, [])

    def test_stale_response_is_discarded_but_cached(self):
        self.client.during_request = lambda: self.resolver.on_input(HASPA_IBAN)
        self.resolver.on_input(COMMERZBANK_IBAN)
        self.timers[0].fire()

        self.assertEqual(self.results, [])
        self.assertEqual(self.resolver.state, IbanResolver.PENDING)
        self.assertIn(COMMERZBANK_IBAN, self.resolver.cache)

        self.timers[1].fire()
        self.assertEqual([iban for iban, _ in self.results], [HASPA_IBAN])

    def test_cached_result_is_delivered_without_request(self):
        self.resolver.on_input(COMMERZBANK_IBAN)
        self.timers[0].fire()
        self.resolver.on_input("DE89 3704 0044 0532 0130 00")

        self.assertEqual(len(self.timers), 1)
        self.assertEqual(self.client.calls, [COMMERZBANK_IBAN])
        self.assertEqual(len(self.results), 2)
        self.assertEqual(self.resolver.state, IbanResolver.IDLE)

    def test_clear_cache(self):
        self.resolver.on_input(COMMERZBANK_IBAN)
        self.timers[0].fire()
        self.resolver.clear_cache()
        self.assertEqual(self.resolver.cache, {})
        self.resolver.on_input(COMMERZBANK_IBAN)
        self.assertEqual(len(self.timers), 2)

    def test_identical_iban_in_flight_is_not_requested_twice(self):
        def retype_same_iban():
            self.resolver.on_input(BUNDESBANK_IBAN)
            self.resolver.on_input(COMMERZBANK_IBAN)
            self.timers[-1].fire()

        self.client.during_request = retype_same_iban
        self.resolver.on_input(COMMERZBANK_IBAN)
        self.timers[0].fire()

        self.assertEqual(self.client.calls, [COMMERZBANK_IBAN])
        self.assertEqual([iban for iban, _ in self.results], [COMMERZBANK_IBAN])
        self.assertEqual(self.resolver.state, IbanResolver.IDLE)

    def test_errors_go_to_error_callback(self):
        self.client.error = BankClientError("Bank API is currently unavailable.")
        self.resolver.on_input(COMMERZBANK_IBAN)
        self.timers[0].fire()

        self.assertEqual(self.results, [])
        self.assertEqual(self.errors[0][0], COMMERZBANK_IBAN)
        self.assertIs(self.errors[0][1], self.client.error)
        self.assertEqual(self.resolver.cache, {})
        self.assertEqual(self.resolver.state, IbanResolver.IDLE)


def _response(payload):
    response = MagicMock()
    response.__enter__.return_value.read.return_value = json.dumps(payload).encode("utf-8")
    return response


def _http_error(code, payload):
    return HTTPError(
        "http://banks.test/api/banks/",
        code,
        "error",
        hdrs=None,
        fp=BytesIO(json.dumps(payload).encode("utf-8")),
    )


class BankLookupClientTests(SimpleTestCase):
    def setUp(self):
        self.client = BankLookupClient("http://banks.test/api/banks", timeout=2.5)

    @patch("banks.client.urlopen")
    def test_lookup_iban(self, urlopen_mock):
        urlopen_mock.return_value = _response({"success": True, "found": True})
        payload = self.client.lookup_iban(COMMERZBANK_IBAN)

        self.assertTrue(payload["found"])
        request = urlopen_mock.call_args.args[0]
        self.assertEqual(request.full_url, f"http://banks.test/api/banks/lookup/iban/{COMMERZBANK_IBAN}/")
        self.assertEqual(request.get_method(), "GET")
        self.assertEqual(urlopen_mock.call_args.kwargs["timeout"], 2.5)

    @patch("banks.client.urlopen")
    def test_search_encodes_query(self, urlopen_mock):
        urlopen_mock.return_value = _response({"results": [{"sortCode": "37050198"}], "count": 1})
        results = self.client.search("Sparkasse Köln", limit=5)

        self.assertEqual(results, [{"sortCode": "37050198"}])
        request = urlopen_mock.call_args.args[0]
        self.assertEqual(
            request.full_url,
            "http://banks.test/api/banks/search/?query=Sparkasse+K%C3%B6ln&limit=5",
        )

    @patch("banks.client.urlopen")
    def test_batch_lookup_posts_json(self, urlopen_mock):
        urlopen_mock.return_value = _response({"results": [{"found": True}], "processed": 1})
        self.client.batch_lookup([COMMERZBANK_IBAN])

        request = urlopen_mock.call_args.args[0]
        self.assertEqual(request.get_method(), "POST")
        self.assertEqual(json.loads(request.data), {"ibans": [COMMERZBANK_IBAN]})
        self.assertEqual(request.get_header("Content-type"), "application/json")

    @patch("banks.client.urlopen")
    def test_not_found_returns_none(self, urlopen_mock):
        urlopen_mock.side_effect = _http_error(404, {"detail": "Bank not found.", "code": "not_found"})
        self.assertIsNone(self.client.lookup_sort_code("12345678"))

    @patch("banks.client.urlopen")
    def test_http_errors_raise(self, urlopen_mock):
        urlopen_mock.side_effect = _http_error(400, {"detail": "Invalid IBAN.", "code": "invalid_iban"})
        with self.assertRaises(BankClientError) as ctx:
            self.client.lookup_iban("DE88370400440532013000")
        self.assertEqual(ctx.exception.status_code, 400)
        self.assertEqual(ctx.exception.code, "invalid_iban")
        self.assertIn("Invalid IBAN.", str(ctx.exception))

    @patch("banks.client.urlopen")
    def test_network_errors_raise(self, urlopen_mock):
        urlopen_mock.side_effect = URLError("connection refused")
        with self.assertRaises(BankClientError) as ctx:
            self.client.status()
        self.assertIsNone(ctx.exception.status_code)

    @patch("banks.client.urlopen")
    def test_invalid_json_raises(self, urlopen_mock):
        response = MagicMock()
        response.__enter__.return_value.read.return_value = b"<html>"
        urlopen_mock.return_value = response
        with self.assertRaises(BankClientError):
            self.client.validate_iban(COMMERZBANK_IBAN)
