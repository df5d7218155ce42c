import random
import string

from django.test import SimpleTestCase

from .iban import (
    CHECKSUM,
    FORMAT,
    IBAN_LENGTHS,
    LENGTH,
    UNKNOWN_COUNTRY,
    compute_check_digits,
    extract_bank_code,
    format_iban,
    is_valid_iban,
    mod97,
    normalize_iban,
    validate_iban,
    validate_iban_logged,
)


PUBLISHED_IBANS = [
    "DE89370400440532013000",
    "GB82WEST12345698765432",
    "FR1420041010050500013M02606",
    "NL91ABNA0417164300",
    "AT611904300234573201",
    "CH9300762011623852957",
    "BE68539007547034",
    "ES9121000418450200051332",
    "IT60X0542811101000000123456",
    "LU280019400644750000",
    "NO9386011117947",
    "MT84MALT011000012345MTLCAST001S",
    "PL61109010140000071219812874",
    "DK5000400440116243",
    "FI2112345600000785",
    "SE4550000000058398257466",
    "IE29AIBK93115212345678",
    "PT50000201231234567890154",
]


def _reference_is_valid(iban):
    rearranged = iban[4:] + iban[:4]
    digits = "".join(str(int(char, 36)) for char in rearranged)
    return int(digits) % 97 == 1


def _reference_iban(country, bban):
    digits = "".join(str(int(char, 36)) for char in f"{bban}{country}00")
    return f"{country}{98 - int(digits) % 97:02d}{bban}"


class IbanValidationTests(SimpleTestCase):
    def test_published_ibans_are_valid(self):
        for iban in PUBLISHED_IBANS:
            with self.subTest(iban=iban):
                result = validate_iban(iban)
                self.assertTrue(result.is_valid)
                self.assertIsNone(result.error_reason)
                self.assertEqual(result.electronic, iban)
                self.assertEqual(result.country_code, iban[:2])

    def test_agrees_with_big_integer_arithmetic(self):
        rng = random.Random(97)
        alphabet = string.ascii_uppercase + string.digits
        for country, length in sorted(IBAN_LENGTHS.items()):
            bban = "".join(rng.choice(alphabet) for _ in range(length - 4))
            iban = _reference_iban(country, bban)
            with self.subTest(iban=iban):
                self.assertTrue(is_valid_iban(iban))
                self.assertEqual(compute_check_digits(country, bban), iban[2:4])
                mutated = iban[:4] + ("1" if iban[4] != "1" else "2") + iban[5:]
                self.assertEqual(is_valid_iban(mutated), _reference_is_valid(mutated))

    def test_mod97_matches_integer_remainder(self):
        for digits in ("1", "96", "97", "123456789", "3214282912345698765432161182"):
            with self.subTest(digits=digits):
                self.assertEqual(mod97(digits), int(digits) % 97)

    def test_empty_input_is_accepted(self):
        for value in (None, "", "   ", " - "):
            with self.subTest(value=value):
                result = validate_iban(value)
                self.assertTrue(result.is_valid)
                self.assertEqual(result.formatted, "")
                self.assertIsNone(result.country_code)

    def test_input_is_normalized_before_validation(self):
        result = validate_iban(" de89 3704-0044 0532.0130 00 ")
        self.assertTrue(result.is_valid)
        self.assertEqual(result.electronic, "DE89370400440532013000")
        self.assertEqual(result.formatted, "DE89 3704 0044 0532 0130 00")
        self.assertEqual(result.national_bank_code, "37040044")

    def test_checksum_failure(self):
        result = validate_iban("DE88370400440532013000")
        self.assertFalse(result.is_valid)
        self.assertEqual(result.error_reason, CHECKSUM)
        self.assertEqual(result.formatted, "DE88 3704 0044 0532 0130 00")
        self.assertEqual(result.national_bank_code, "37040044")
        self.assertIn("checksum", result.message.lower())

    def test_single_digit_changes_are_detected(self):
        iban = "DE89370400440532013000"
        for index in range(4, len(iban)):
            replacement = "0" if iban[index] != "0" else "1"
            mutated = iban[:index] + replacement + iban[index + 1 :]
            with self.subTest(index=index):
                self.assertEqual(validate_iban(mutated).error_reason, CHECKSUM)

    def test_format_failure(self):
        for value in ("1234", "D", "DEXX370400440532013000", "8937040044"):
            with self.subTest(value=value):
                result = validate_iban(value)
                self.assertFalse(result.is_valid)
                self.assertEqual(result.error_reason, FORMAT)
                self.assertIsNone(result.country_code)

    def test_unknown_country(self):
        result = validate_iban("XX89370400440532013000")
        self.assertFalse(result.is_valid)
        self.assertEqual(result.error_reason, UNKNOWN_COUNTRY)
        self.assertEqual(result.country_code, "XX")
        self.assertIn("XX", result.message)

    def test_length_failure_keeps_bank_code(self):
        result = validate_iban("DE8937040044")
        self.assertFalse(result.is_valid)
        self.assertEqual(result.error_reason, LENGTH)
        self.assertEqual(result.national_bank_code, "37040044")
        self.assertIn("22", result.message)
        self.assertIn("12", result.message)

    def test_too_long_is_a_length_failure(self):
        self.assertEqual(validate_iban("DE890370400440532013000").error_reason, LENGTH)

    def test_bank_code_positions(self):
        self.assertEqual(extract_bank_code("AT611904300234573201", "AT"), "19043")
        self.assertEqual(extract_bank_code("IT60X0542811101000000123456", "IT"), "05428")
        self.assertEqual(extract_bank_code("NL91ABNA0417164300", "NL"), "ABNA")
        self.assertIsNone(extract_bank_code("GB82WEST12345698765432", "GB"))
        self.assertIsNone(extract_bank_code("DE89", "DE"))

    def test_format_is_lossless(self):
        for iban in PUBLISHED_IBANS + ["abc", "de89 3704"]:
            with self.subTest(iban=iban):
                formatted = format_iban(iban)
                self.assertEqual(formatted.replace(" ", ""), normalize_iban(iban))
                self.assertTrue(all(len(block) <= 4 for block in formatted.split(" ")))

    def test_invalid_input_is_still_formatted(self):
        self.assertEqual(validate_iban("xx12 3456 789").formatted, "XX12 3456 789")

    def test_logged_validation_reports_failures(self):
        with self.assertLogs("banks.iban", level="WARNING") as captured:
            result = validate_iban_logged("DE88370400440532013000", context="member-form")
        self.assertFalse(result.is_valid)
        self.assertIn("member-form", captured.output[0])
        self.assertIn(CHECKSUM, captured.output[0])
