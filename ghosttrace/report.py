from __future__ import annotations

import csv
import io
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Literal, Sequence

from .config_schema import DEFAULT_PROFILE_URL_TEMPLATE
from .errors import ExportError
from .records import UserRecord

ReportFormat = Literal["csv", "xlsx"]

REPORT_COLUMNS = ("Username", "ProfileURL", "DateAdded")

_EXCEL_FORMULA_PREFIXES = ("=", "+", "-", "@")


def _safe_excel_text(value: Any) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        return str(value)
    if value.startswith(_EXCEL_FORMULA_PREFIXES):
        return "'" + value
    return value


def resolve_profile_url(
    record: UserRecord, template: str = DEFAULT_PROFILE_URL_TEMPLATE
) -> str:
    if record.profile_url:
        return record.profile_url
    return template.format(username=record.username)


def format_date_added(timestamp: int | None) -> str:
    if timestamp is None:
        return ""
    try:
        return datetime.fromtimestamp(timestamp, tz=timezone.utc).date().isoformat()
    except (OverflowError, OSError, ValueError):
        return ""


def report_rows(
    records: Sequence[UserRecord],
    *,
    profile_url_template: str = DEFAULT_PROFILE_URL_TEMPLATE,
) -> list[tuple[str, str, str]]:
    return [
        (
            r.username,
            resolve_profile_url(r, profile_url_template),
            format_date_added(r.timestamp),
        )
        for r in records
    ]


def render_csv(
    records: Sequence[UserRecord],
    *,
    profile_url_template: str = DEFAULT_PROFILE_URL_TEMPLATE,
) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(REPORT_COLUMNS)
    writer.writerows(report_rows(records, profile_url_template=profile_url_template))
    return buf.getvalue()


def report_filename(view: str, fmt: ReportFormat, today: date | None = None) -> str:
    day = today or datetime.now(timezone.utc).date()
    stem = (view or "").strip() or "ghosttrace_export"
    return f"{stem}_{day.isoformat()}.{fmt}"


def _write_xlsx(
    records: Sequence[UserRecord],
    out: Path,
    *,
    sheet_name: str,
    profile_url_template: str,
) -> None:
    try:
        import pandas as pd  # type: ignore[import-not-found]
    except Exception as e:
        raise ExportError("pandas is required for Excel export") from e

    rows = [
        {col: _safe_excel_text(val) for col, val in zip(REPORT_COLUMNS, row)}
        for row in report_rows(records, profile_url_template=profile_url_template)
    ]
    df = pd.DataFrame(rows, columns=list(REPORT_COLUMNS))

    try:
        with pd.ExcelWriter(out, engine="openpyxl") as writer:
            df.to_excel(writer, sheet_name=sheet_name[:31], index=False)
            writer.book[sheet_name[:31]].freeze_panes = "A2"
    except Exception as e:
        raise ExportError(f"Failed to write workbook: {out}: {e}") from e


def export_report(
    records: Sequence[UserRecord],
    view: str,
    out_dir: str | Path,
    *,
    fmt: ReportFormat = "csv",
    profile_url_template: str = DEFAULT_PROFILE_URL_TEMPLATE,
    today: date | None = None,
) -> Path:
    """
    Write one comparison view as a report and return its path.

    The file is named after the view and the export date, e.g.
    `not_following_back_2026-10-18.csv`.
    """
    if fmt not in ("csv", "xlsx"):
        raise ExportError(f"Unsupported report format: {fmt!r}")

    if not records:
        raise ExportError("No users to export in this view")

    out_root = Path(out_dir)
    try:
        out_root.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise ExportError(f"Failed to create report directory: {out_root}: {e}") from e

    out = out_root / report_filename(view, fmt, today)

    if fmt == "xlsx":
        _write_xlsx(records, out, sheet_name=view or "report", profile_url_template=profile_url_template)
        return out

    try:
        out.write_text(
            render_csv(records, profile_url_template=profile_url_template),
            encoding="utf-8",
            newline="",
        )
    except OSError as e:
        raise ExportError(f"Failed to write report: {out}: {e}") from e
    return out
