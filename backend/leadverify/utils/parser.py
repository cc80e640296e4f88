# backend/leadverify/utils/parser.py
import csv
import io
import re
from typing import Dict, List, Optional

import xlrd
from openpyxl import load_workbook

_NON_ALNUM = re.compile(r"[^a-z0-9]")

CONTACT_HEADER_ALIASES = {
    "fullname": "full_name",
    "name": "full_name",
    "contactname": "full_name",
    "firstname": "first_name",
    "first": "first_name",
    "lastname": "last_name",
    "last": "last_name",
    "surname": "last_name",
    "title": "title",
    "jobtitle": "title",
    "email": "email",
    "emailaddress": "email",
    "workemail": "email",
    "phone": "phone",
    "phonenumber": "phone",
    "directphone": "phone",
    "mobile": "mobile",
    "mobilephone": "mobile",
    "cell": "mobile",
    "linkedin": "linkedin_url",
    "linkedinurl": "linkedin_url",
    "address": "address1",
    "address1": "address1",
    "street": "address1",
    "address2": "address2",
    "city": "city",
    "state": "state",
    "province": "state",
    "zip": "postal_code",
    "zipcode": "postal_code",
    "postalcode": "postal_code",
    "country": "country",
    "company": "account_name",
    "companyname": "account_name",
    "account": "account_name",
    "accountname": "account_name",
    "domain": "domain",
    "website": "domain",
    "companydomain": "domain",
    "cavid": "cav_id",
    "cavuserid": "cav_user_id",
    "sourcetype": "source_type",
    "source": "source_type",
}

SUPPRESSION_HEADER_ALIASES = {
    "email": "email",
    "emailaddress": "email",
    "cavid": "cav_id",
    "cavuserid": "cav_user_id",
    "firstname": "first_name",
    "lastname": "last_name",
    "fullname": "full_name",
    "name": "full_name",
    "company": "company_name",
    "companyname": "company_name",
    "account": "company_name",
    "accountname": "company_name",
    "reason": "reason",
}

SUBMISSION_HEADER_ALIASES = {
    "email": "email",
    "emailaddress": "email",
    "contactid": "contact_id",
    "id": "contact_id",
    "submittedat": "submitted_at",
    "submissiondate": "submitted_at",
    "submitted": "submitted_at",
    "date": "submitted_at",
}

VALIDATION_RESULT_HEADER_ALIASES = {
    "email": "email",
    "emailaddress": "email",
    "emailstatus": "email_status",
    "status": "email_status",
    "result": "email_status",
    "verificationresult": "email_status",
}


def header_key(header: str) -> str:
    """'Company Name ' -> 'companyname'"""
    return _NON_ALNUM.sub("", str(header or "").lower())


def parse_csv_bytes(content: bytes) -> List[List[str]]:
    text = content.decode("utf-8-sig", errors="ignore")
    return parse_csv_text(text)


def parse_csv_text(text: str) -> List[List[str]]:
    reader = csv.reader(io.StringIO(text))
    return [row for row in reader if any(cell.strip() for cell in row)]


def parse_xlsx_bytes(content: bytes) -> List[List[str]]:
    workbook = load_workbook(io.BytesIO(content), read_only=True)
    sheet = workbook.active

    rows = []
    for row in sheet.iter_rows(values_only=True):
        if not row:
            continue
        # keep positions so columns stay aligned with the header
        cleaned = ["" if cell is None else str(cell).strip() for cell in row]
        if any(cleaned):
            rows.append(cleaned)

    return rows


def parse_xls_bytes(content: bytes) -> List[List[str]]:
    workbook = xlrd.open_workbook(file_contents=content)
    sheet = workbook.sheet_by_index(0)
    rows = []
    for i in range(sheet.nrows):
        cleaned = [str(cell.value).strip() for cell in sheet.row(i)]
        if any(cleaned):
            rows.append(cleaned)
    return rows


def parse_upload(filename: str, content: bytes) -> List[List[str]]:
    fname = (filename or "").lower()
    if fname.endswith(".xlsx"):
        return parse_xlsx_bytes(content)
    if fname.endswith(".xls"):
        return parse_xls_bytes(content)
    if fname.endswith((".csv", ".txt")):
        return parse_csv_bytes(content)
    raise ValueError("Only CSV, TXT, XLSX, XLS allowed")


def rows_to_dicts(rows: List[List[str]]) -> List[Dict[str, str]]:
    """First row is the header."""
    if not rows:
        return []
    headers = [str(h).strip() for h in rows[0]]
    out = []
    for row in rows[1:]:
        out.append({headers[i]: (row[i] if i < len(row) else "") for i in range(len(headers)) if headers[i]})
    return out


def map_row(
    raw: Dict[str, object],
    aliases: Dict[str, str],
    field_mappings: Optional[Dict[str, str]] = None,
) -> Dict[str, str]:
    """
    Translate a raw row to internal field names.

    Explicit ``field_mappings`` (source header -> field) win; other headers are
    matched through ``aliases`` on their alphanumeric lowercase form.
    """
    explicit = field_mappings or {}
    mapped: Dict[str, str] = {}
    for header, value in raw.items():
        target = explicit.get(header) or aliases.get(header_key(header))
        if not target or value is None:
            continue
        text = str(value).strip()
        if text and target not in mapped:
            mapped[target] = text
    return mapped
