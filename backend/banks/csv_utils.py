from __future__ import annotations

import csv
import re
from io import StringIO


DEFAULT_ENCODING = "latin-1"
DELIMITER = ";"

_UTF8_BOM = b"\xef\xbb\xbf"
_TRANSLITERATIONS = (("ä", "ae"), ("ö", "oe"), ("ü", "ue"), ("ß", "ss"))
_NON_KEY_CHARS = re.compile(r"[^a-z0-9]")

# Candidate keys per logical field, tried in order against normalized headers.
# The later entries are spellings seen in feeds whose umlauts were lost in transit.
FIELD_CANDIDATES: dict[str, tuple[str, ...]] = {
    "sort_code": ("bankleitzahl", "blz", "sortcode"),
    "flag": ("merkmal",),
    "full_name": ("bezeichnung", "name"),
    "postal_code": ("plz", "postleitzahl"),
    "city": ("ort",),
    "short_name": ("kurzbezeichnung",),
    "head_office_indicator": ("pan",),
    "bic": ("bic", "swiftbic", "swift"),
    "checksum_method": (
        "pruefzifferberechnungsmethode",
        "prfzifferberechnungsmethode",
        "prufzifferberechnungsmethode",
        "pruefziffermethode",
    ),
    "record_number": ("datensatznummer",),
    "change_marker": (
        "aenderungskennzeichen",
        "nderungskennzeichen",
        "anderungskennzeichen",
    ),
    "deletion_marker": (
        "bankleitzahlloeschung",
        "bankleitzahllschung",
        "bankleitzahlloschung",
    ),
    "successor_sort_code": ("nachfolgebankleitzahl", "nachfolgeblz"),
}

# Last resort: the header text exactly as published.
FIELD_RAW_HEADERS: dict[str, str] = {
    "sort_code": "Bankleitzahl",
    "flag": "Merkmal",
    "full_name": "Bezeichnung",
    "postal_code": "PLZ",
    "city": "Ort",
    "short_name": "Kurzbezeichnung",
    "head_office_indicator": "PAN",
    "bic": "BIC",
    "checksum_method": "Prüfzifferberechnungsmethode",
    "record_number": "Datensatznummer",
    "change_marker": "Änderungskennzeichen",
    "deletion_marker": "Bankleitzahllöschung",
    "successor_sort_code": "Nachfolge-Bankleitzahl",
}

ENTRY_FIELDS = tuple(FIELD_CANDIDATES)


def normalize_header(text: str) -> str:
    normalized = str(text or "").strip().lower()
    for source, target in _TRANSLITERATIONS:
        normalized = normalized.replace(source, target)
    return _NON_KEY_CHARS.sub("", normalized)


def decode_feed(raw: bytes, encoding: str = DEFAULT_ENCODING) -> str:
    if raw.startswith(_UTF8_BOM):
        return raw[len(_UTF8_BOM) :].decode("utf-8")
    return raw.decode(encoding)


def read_csv(file_obj, encoding: str = DEFAULT_ENCODING):
    if hasattr(file_obj, "seek"):
        file_obj.seek(0)
    text = decode_feed(file_obj.read(), encoding)
    reader = csv.reader(StringIO(text), delimiter=DELIMITER, quotechar='"')
    rows = [row for row in reader if row]
    if not rows:
        return [], []
    headers = [header.strip() for header in rows[0]]
    return headers, rows[1:]


def to_row_dict(headers, row):
    return {headers[idx]: (row[idx].strip() if idx < len(row) else "") for idx in range(len(headers))}


def map_headers(headers) -> dict[str, str]:
    """Resolve each entry field to the header carrying it; done once per file."""
    normalized: dict[str, str] = {}
    for header in headers:
        normalized.setdefault(normalize_header(header), header)
    raw_headers = set(headers)
    mapping = {}
    for field in ENTRY_FIELDS:
        source = next(
            (normalized[candidate] for candidate in FIELD_CANDIDATES[field] if candidate in normalized),
            None,
        )
        if source is None and FIELD_RAW_HEADERS.get(field) in raw_headers:
            source = FIELD_RAW_HEADERS[field]
        if source is not None:
            mapping[field] = source
    return mapping


def resolve_field(row_data: dict[str, str], field: str, header_map: dict[str, str] | None = None) -> str:
    if header_map is None:
        header_map = map_headers(row_data)
    header = header_map.get(field)
    if header is None:
        return ""
    return str(row_data.get(header) or "").strip()


def extract_entry(row_data: dict[str, str], header_map: dict[str, str] | None = None) -> dict[str, str] | None:
    """Map one CSV row onto entry fields; filler rows without a sort code yield None."""
    if header_map is None:
        header_map = map_headers(row_data)
    entry = {field: resolve_field(row_data, field, header_map) for field in ENTRY_FIELDS}
    if not entry["sort_code"]:
        return None
    entry["bic"] = entry["bic"].upper()
    return entry

