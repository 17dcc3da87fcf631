"""
Identifier naming convention for the raw layer.

Source names are normalized to snake_case on the way in, the same way dlt
does it, so `InvoiceLineId` lands as `invoice_line_id` and `studentInfo`
as `student_info`.
"""

import re

_ACRONYM_BOUNDARY = re.compile(r"(?<=[A-Z])(?=[A-Z][a-z])")
_CASE_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")
_INVALID = re.compile(r"[^a-z0-9]+")


def normalize_identifier(name: str) -> str:
    """Convert a source table or column name to snake_case"""
    name = _ACRONYM_BOUNDARY.sub("_", name.strip())
    name = _CASE_BOUNDARY.sub("_", name)
    name = _INVALID.sub("_", name.lower()).strip("_")
    if not name:
        raise ValueError("Identifier is empty after normalization")
    if name[0].isdigit():
        name = f"_{name}"
    return name
