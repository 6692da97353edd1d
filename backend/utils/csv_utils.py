import csv
from datetime import datetime
from io import StringIO
from typing import Iterable, List, Optional, Sequence

UTF8_BOM = "\ufeff"
# Leading characters that spreadsheet tools evaluate as a formula.
FORMULA_PREFIXES = ("=", "+", "-", "@", "\t", "\r")


def neutralize_cell(value):
    if isinstance(value, str) and value.startswith(FORMULA_PREFIXES):
        return "'" + value
    return value


def rows_to_csv(headers: Sequence[str], rows: Iterable[Sequence[str]], bom: bool = False) -> str:
    buffer = StringIO()
    if bom:
        # Spreadsheet tools need the BOM to read Arabic text as UTF-8.
        buffer.write(UTF8_BOM)
    writer = csv.writer(buffer)
    writer.writerow(headers)
    for row in rows:
        writer.writerow([neutralize_cell(cell) for cell in row])
    return buffer.getvalue()


def _fmt(value: Optional[datetime]) -> str:
    return value.isoformat() if value else ""


def correspondences_to_csv(correspondences: List) -> str:
    headers = [
        "reference_number",
        "type",
        "subject",
        "sender_entity",
        "receiver_entity",
        "correspondence_date",
        "current_status",
        "review_status",
        "created_by",
        "created_at",
    ]
    rows = []
    for item in correspondences:
        rows.append(
            [
                item.reference_number,
                item.type,
                item.subject,
                item.sender_entity.name_ar if item.sender_entity else "",
                item.receiver_entity.name_ar if item.receiver_entity else "",
                _fmt(item.correspondence_date),
                item.current_status,
                item.review_status,
                item.creator.username if item.creator else "",
                _fmt(item.created_at),
            ]
        )
    return rows_to_csv(headers, rows, bom=True)


def stats_to_csv(stats: dict) -> str:
    rows = []
    for key, value in stats.items():
        if isinstance(value, dict):
            rows.extend([f"{key}.{sub_key}", str(sub_value)] for sub_key, sub_value in value.items())
        else:
            rows.append([key, str(value)])
    return rows_to_csv(["metric", "value"], rows, bom=True)
