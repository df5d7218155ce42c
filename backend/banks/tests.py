from unittest.mock import patch

from django.core.cache import cache
from django.db import DatabaseError
from django.db.models.query import QuerySet
from django.test import TestCase, override_settings
from rest_framework import serializers, status
from rest_framework.test import APIClient

from .exceptions import BatchSizeError, InvalidBicError, InvalidIbanError, InvalidSortCodeError
from .fields import IbanField
from .iban import CHECKSUM, compute_check_digits
from .models import BankDirectoryEntry
from .registry import BankRegistry, RegistryStatus
from .services import BankLookupService


COMMERZBANK_IBAN = "DE89370400440532013000"


def german_iban(sort_code, account="0532013000"):
    bban = f"{sort_code}{account}"
    return f"DE{compute_check_digits('DE', bban)}{bban}"


def create_entries():
    rows = [
        ("37040044", "Commerzbank", "Commerzbank Köln", "Köln", "COBADEFFXXX"),
        ("10000000", "Bundesbank", "BBk Berlin", "Berlin", "MARKDEF1100"),
        ("10010111", "Postbank Ndl der Deutsche Bank", "Postbank Ndl der DB", "Berlin", ""),
        ("20050550", "Hamburger Sparkasse", "Haspa Hamburg", "Hamburg", "HASPDEHHXXX"),
        ("20050999", "Hamburger Sparkasse", "Haspa Filiale", "Hamburg", "HASPDEHHXXX"),
        ("37050198", "Sparkasse KölnBonn", "Sparkasse KölnBonn", "Köln", "COLSDE33XXX"),
        ("44060604", "Spar- und Darlehnskasse", "SDK Musterstadt", "Musterstadt", "GENODEF1SDK"),
    ]
    for sort_code, full_name, short_name, city, bic in rows:
        BankDirectoryEntry.objects.create(
            sort_code=sort_code,
            full_name=full_name,
            short_name=short_name,
            city=city,
            bic=bic,
        )


class BankLookupServiceTests(TestCase):
    def setUp(self):
        create_entries()
        self.service = BankLookupService(BankRegistry())

    def test_resolve_by_iban(self):
        result = self.service.resolve_by_iban("de89 3704 0044 0532 0130 00")
        self.assertTrue(result.found)
        self.assertEqual(result.sort_code, "37040044")
        self.assertEqual(result.entry.bic, "COBADEFFXXX")
        self.assertEqual(result.formatted_iban, "DE89 3704 0044 0532 0130 00")

    def test_resolve_by_iban_ignores_entries_without_bic(self):
        result = self.service.resolve_by_iban(german_iban("10010111"))
        self.assertFalse(result.found)
        self.assertIsNone(result.sort_code)

    def test_resolve_by_iban_outside_registry_country(self):
        result = self.service.resolve_by_iban("GB82WEST12345698765432")
        self.assertFalse(result.found)
        self.assertEqual(result.formatted_iban, "GB82 WEST 1234 5698 7654 32")

    def test_resolve_by_iban_rejects_invalid(self):
        with self.assertRaises(InvalidIbanError) as ctx:
            self.service.resolve_by_iban("DE88370400440532013000")
        self.assertEqual(ctx.exception.validation.error_reason, CHECKSUM)

    def test_resolve_by_iban_rejects_empty(self):
        result = self.service.resolve_by_iban("")
        self.assertFalse(result.found)

    def test_resolve_by_sort_code_validates_shape(self):
        for value in ("1234", "370400440", "3704004A"):
            with self.subTest(value=value):
                with self.assertRaises(InvalidSortCodeError):
                    self.service.resolve_by_sort_code(value)

    def test_resolve_by_bic_prefers_lowest_sort_code(self):
        result = self.service.resolve_by_bic("haspdehhxxx")
        self.assertTrue(result.found)
        self.assertEqual(result.sort_code, "20050550")

    def test_resolve_by_bic_validates_shape(self):
        with self.assertRaises(InvalidBicError):
            self.service.resolve_by_bic("COBADE")

    def test_clamp_limit(self):
        self.assertEqual(self.service.clamp_limit(None), 10)
        self.assertEqual(self.service.clamp_limit("abc"), 10)
        self.assertEqual(self.service.clamp_limit(0), 1)
        self.assertEqual(self.service.clamp_limit("500"), 50)

    def test_search_ranks_prefix_matches_first(self):
        names = [entry.full_name for entry in self.service.search_by_name("spar", 10)]
        self.assertEqual(
            names,
            [
                "Sparkasse KölnBonn",
                "Spar- und Darlehnskasse",
                "Hamburger Sparkasse",
                "Hamburger Sparkasse",
            ],
        )

    def test_search_matches_city_and_excludes_entries_without_bic(self):
        sort_codes = [entry.sort_code for entry in self.service.search_by_name("Berlin", 10)]
        self.assertEqual(sort_codes, ["10000000"])

    def test_search_folds_case_beyond_ascii(self):
        BankDirectoryEntry.objects.create(
            sort_code="30060601",
            full_name="Ärztebank",
            short_name="Ärztebank Düsseldorf",
            city="Düsseldorf",
            bic="DAAEDEDDXXX",
        )
        for term in ("ärztebank", "ÄRZTEBANK", "düsseldorf"):
            with self.subTest(term=term):
                sort_codes = [entry.sort_code for entry in self.service.search_by_name(term, 10)]
                self.assertEqual(sort_codes, ["30060601"])

    def test_search_requires_two_characters(self):
        with self.assertNumQueries(0):
            self.assertEqual(self.service.search_by_name("s"), [])
            self.assertEqual(self.service.search_by_name("  "), [])

    def test_batch_keeps_input_order(self):
        results = self.service.batch_resolve_by_iban(
            [german_iban("20050550"), "not an iban", COMMERZBANK_IBAN, None]
        )
        self.assertEqual([result.found for result in results], [True, False, True, False])
        self.assertEqual(results[0].sort_code, "20050550")
        self.assertEqual(results[1].error_reason, "FORMAT")
        self.assertEqual(results[2].sort_code, "37040044")
        self.assertIsNone(results[3].error_reason)

    def test_batch_size_limits(self):
        for value in ([], None, "DE89370400440532013000", [COMMERZBANK_IBAN] * 101):
            with self.subTest(size=len(value) if isinstance(value, list) else value):
                with self.assertRaises(BatchSizeError):
                    self.service.batch_resolve_by_iban(value)
        self.assertEqual(len(self.service.batch_resolve_by_iban([COMMERZBANK_IBAN] * 100)), 100)

    def test_status_counts_distinct_bics(self):
        registry_status = self.service.status()
        self.assertTrue(registry_status.available)
        self.assertEqual(registry_status.total_entries, 7)
        self.assertEqual(registry_status.unique_bics, 5)
        self.assertIsNotNone(registry_status.last_updated_at)

    def test_status_reports_database_failure(self):
        with patch.object(QuerySet, "aggregate", side_effect=DatabaseError("no such table")):
            registry_status = self.service.status()
        self.assertFalse(registry_status.available)
        self.assertIn("no such table", registry_status.error)


class BankApiTests(TestCase):
    def setUp(self):
        cache.clear()
        create_entries()
        self.client = APIClient()

    def test_lookup_by_iban(self):
        response = self.client.get(f"/api/banks/lookup/iban/{COMMERZBANK_IBAN}/")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(
            response.data,
            {
                "success": True,
                "found": True,
                "iban": "DE89 3704 0044 0532 0130 00",
                "bankSortCode": "37040044",
                "bank": {
                    "name": "Commerzbank",
                    "shortName": "Commerzbank Köln",
                    "bic": "COBADEFFXXX",
                    "city": "Köln",
                },
            },
        )

    def test_lookup_by_iban_not_in_registry(self):
        response = self.client.get(f"/api/banks/lookup/iban/{german_iban('12345678')}/")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(response.data["found"])
        self.assertIsNone(response.data["bankSortCode"])
        self.assertIsNone(response.data["bank"])

    def test_lookup_by_invalid_iban(self):
        response = self.client.get("/api/banks/lookup/iban/DE88370400440532013000/")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["code"], "invalid_iban")
        self.assertEqual(response.data["reason"], CHECKSUM)

    def test_lookup_by_iban_registry_unavailable(self):
        with patch.object(BankRegistry, "find_by_sort_code", side_effect=DatabaseError("locked")):
            response = self.client.get(f"/api/banks/lookup/iban/{COMMERZBANK_IBAN}/")
        self.assertEqual(response.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertEqual(response.data["code"], "registry_unavailable")

    def test_lookup_by_sort_code(self):
        response = self.client.get("/api/banks/lookup/sortcode/37040044/")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["bankSortCode"], "37040044")
        self.assertEqual(response.data["bank"]["bic"], "COBADEFFXXX")
        self.assertNotIn("iban", response.data)

    def test_lookup_by_sort_code_not_found(self):
        response = self.client.get("/api/banks/lookup/sortcode/12345678/")
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data["code"], "not_found")
        self.assertEqual(response.data["bankSortCode"], "12345678")

    def test_lookup_by_malformed_sort_code(self):
        response = self.client.get("/api/banks/lookup/sortcode/1234/")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["code"], "invalid_sort_code")

    def test_lookup_by_bic(self):
        response = self.client.get("/api/banks/lookup/bic/cobadeffxxx/")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["bic"], "COBADEFFXXX")
        self.assertEqual(response.data["bank"]["bankSortCode"], "37040044")

    def test_lookup_by_bic_not_found(self):
        response = self.client.get("/api/banks/lookup/bic/NONEDEFFXXX/")
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data["bic"], "NONEDEFFXXX")

    def test_lookup_by_malformed_bic(self):
        response = self.client.get("/api/banks/lookup/bic/ABC/")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["code"], "invalid_bic")

    def test_search(self):
        response = self.client.get("/api/banks/search/", {"query": "spar", "limit": 2})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["count"], 2)
        first = response.data["results"][0]
        self.assertEqual(first["sortCode"], "37050198")
        self.assertEqual(first["displayName"], "Sparkasse KölnBonn (Köln)")
        self.assertEqual(first["fullDisplayName"], "Sparkasse KölnBonn - Köln")

    def test_search_accepts_q_alias(self):
        response = self.client.get("/api/banks/search/", {"q": "haspa"})
        self.assertEqual(response.data["count"], 2)

    def test_search_lowercase_umlaut(self):
        BankDirectoryEntry.objects.create(
            sort_code="30060601",
            full_name="Ärztebank",
            short_name="Ärztebank Düsseldorf",
            city="Düsseldorf",
            bic="DAAEDEDDXXX",
        )
        response = self.client.get("/api/banks/search/", {"query": "ärztebank"})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([result["sortCode"] for result in response.data["results"]], ["30060601"])

    def test_search_short_query(self):
        with self.assertNumQueries(0):
            response = self.client.get("/api/banks/search/", {"query": "s"})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["results"], [])
        self.assertIn("message", response.data)

    def test_status(self):
        response = self.client.get("/api/banks/status/")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data["bankDatabase"]["available"])
        self.assertEqual(response.data["bankDatabase"]["totalBanks"], 7)
        self.assertEqual(response.data["bankDatabase"]["uniqueBics"], 5)

    def test_status_unavailable(self):
        unavailable = RegistryStatus(available=False, error="no such table")
        with patch.object(BankRegistry, "status", return_value=unavailable):
            response = self.client.get("/api/banks/status/")
        self.assertEqual(response.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertEqual(response.data["code"], "registry_unavailable")
        self.assertFalse(response.data["bankDatabase"]["available"])

    @override_settings(DEBUG=False)
    def test_status_unavailable_hides_driver_error(self):
        failure = DatabaseError('could not connect to server at "10.0.3.7", user "bank_registry"')
        with patch.object(QuerySet, "aggregate", side_effect=failure):
            with self.assertLogs("banks.registry", "ERROR") as logs:
                response = self.client.get("/api/banks/status/")
        self.assertEqual(response.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertNotIn("error", response.data["bankDatabase"])
        self.assertNotIn(b"10.0.3.7", response.content)
        self.assertNotIn(b"bank_registry", response.content)
        self.assertIn("10.0.3.7", logs.output[0])

    @override_settings(DEBUG=True)
    def test_status_unavailable_shows_error_when_debugging(self):
        unavailable = RegistryStatus(available=False, error="no such table")
        with patch.object(BankRegistry, "status", return_value=unavailable):
            response = self.client.get("/api/banks/status/")
        self.assertEqual(response.data["bankDatabase"]["error"], "no such table")

    def test_batch_lookup(self):
        response = self.client.post(
            "/api/banks/batch-lookup/",
            {"ibans": ["de89 3704 0044 0532 0130 00", "XX00123", german_iban("10000000")]},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["processed"], 3)
        results = response.data["results"]
        self.assertEqual(results[0]["iban"], "de89 3704 0044 0532 0130 00")
        self.assertEqual(results[0]["formatted"], "DE89 3704 0044 0532 0130 00")
        self.assertEqual(results[0]["bankSortCode"], "37040044")
        self.assertFalse(results[1]["found"])
        self.assertEqual(results[1]["errorReason"], "UNKNOWN_COUNTRY")
        self.assertEqual(results[2]["bank"]["bic"], "MARKDEF1100")

    def test_batch_lookup_item_registry_failure(self):
        with patch.object(BankRegistry, "find_by_sort_code", side_effect=DatabaseError("locked")):
            response = self.client.post(
                "/api/banks/batch-lookup/", {"ibans": [COMMERZBANK_IBAN]}, format="json"
            )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["results"][0]["errorReason"], "registry_unavailable")

    def test_batch_lookup_rejects_oversized_batch(self):
        response = self.client.post(
            "/api/banks/batch-lookup/", {"ibans": [COMMERZBANK_IBAN] * 101}, format="json"
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["code"], "invalid_batch")

    def test_batch_lookup_requires_list(self):
        for payload in ({}, {"ibans": COMMERZBANK_IBAN}, {"ibans": []}):
            with self.subTest(payload=payload):
                response = self.client.post("/api/banks/batch-lookup/", payload, format="json")
                self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_validate_iban(self):
        response = self.client.post(
            "/api/banks/validate-iban/", {"iban": "de89 3704 0044 0532 0130 00"}, format="json"
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data["isValid"])
        self.assertEqual(response.data["normalizedIban"], "DE89 3704 0044 0532 0130 00")
        self.assertEqual(response.data["countryCode"], "DE")
        self.assertEqual(response.data["nationalBankCode"], "37040044")

    def test_validate_invalid_iban(self):
        response = self.client.post(
            "/api/banks/validate-iban/", {"iban": "DE8937040044"}, format="json"
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(response.data["isValid"])
        self.assertEqual(response.data["errorReason"], "LENGTH")
        self.assertTrue(response.data["message"])

    def test_validate_iban_logs_outcome(self):
        with self.assertLogs("banks.iban", "INFO") as logs:
            self.client.post("/api/banks/validate-iban/", {"iban": COMMERZBANK_IBAN}, format="json")
            self.client.post("/api/banks/validate-iban/", {"iban": "DE8937040044"}, format="json")
        self.assertEqual([record.levelname for record in logs.records], ["INFO", "WARNING"])
        self.assertIn("[validate-iban]", logs.output[1])
        self.assertIn("LENGTH", logs.output[1])

    def test_validate_empty_iban(self):
        response = self.client.post("/api/banks/validate-iban/", {"iban": ""}, format="json")
        self.assertTrue(response.data["isValid"])
        self.assertIsNone(response.data["normalizedIban"])

    def test_validation_errors_carry_code(self):
        response = self.client.post(
            "/api/banks/validate-iban/", {"iban": {"nested": True}}, format="json"
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["code"], "invalid")

    def test_health_check(self):
        response = self.client.get("/api/health/")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.json(), {"status": "ok"})


class _AccountSerializer(serializers.Serializer):
    iban = IbanField()


class IbanFieldTests(TestCase):
    def test_accepts_and_compacts_valid_iban(self):
        serializer = _AccountSerializer(data={"iban": "de89 3704 0044 0532 0130 00"})
        self.assertTrue(serializer.is_valid(), serializer.errors)
        self.assertEqual(serializer.validated_data["iban"], COMMERZBANK_IBAN)

    def test_reports_reason_as_error_code(self):
        cases = {
            "DE88370400440532013000": "invalid_checksum",
            "DE8937040044": "invalid_length",
            "XX89370400440532013000": "unknown_country",
            "12345": "invalid_iban_format",
        }
        for value, code in cases.items():
            with self.subTest(value=value):
                serializer = _AccountSerializer(data={"iban": value})
                self.assertFalse(serializer.is_valid())
                self.assertEqual(serializer.errors["iban"][0].code, code)

    def test_blank_is_allowed_by_default(self):
        serializer = _AccountSerializer(data={"iban": ""})
        self.assertTrue(serializer.is_valid(), serializer.errors)
        self.assertEqual(serializer.validated_data["iban"], "")
