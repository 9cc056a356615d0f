"""
Spreadsheet export of results (.xlsx via openpyxl).
"""

from datetime import datetime
from io import BytesIO

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill

from qa_dashboard.models import Result

SHEET_TITLE = "Test Results"

# (header, column width)
COLUMNS = [
    ("Created At", 20),
    ("Status", 10),
    ("Site Name", 20),
    ("Browser", 15),
    ("Device Name", 20),
    ("Feature Name", 20),
    ("Duration (s)", 15),
    ("Error Log", 50),
]

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def export_filename(now: datetime | None = None) -> str:
    return f"test_results_{(now or datetime.now()):%Y%m%d_%H%M%S}.xlsx"


def _row(result: Result) -> list:
    return [
        result.created_at.strftime("%Y-%m-%d %H:%M:%S") if result.created_at else "",
        result.status,
        result.site.name if result.site else "N/A",
        result.browser or "",
        result.device.name if result.device else "N/A",
        result.feature.name if result.feature else "N/A",
        round(result.duration, 2) if result.duration is not None else "",
        result.error_log or "",
    ]


def build_results_workbook(results: list[Result]) -> bytes:
    """Render *results* (already ordered newest first) to xlsx bytes."""
    wb = Workbook()
    ws = wb.active
    ws.title = SHEET_TITLE

    header_font = Font(bold=True, size=12)
    header_fill = PatternFill(start_color="E0E0E0", end_color="E0E0E0", fill_type="solid")
    centered = Alignment(horizontal="center", vertical="center")

    ws.append([header for header, _ in COLUMNS])
    for cell in ws[1]:
        cell.font = header_font
        cell.fill = header_fill
        cell.alignment = centered

    for index, (_, width) in enumerate(COLUMNS):
        ws.column_dimensions[chr(ord("A") + index)].width = width

    for result in results:
        ws.append(_row(result))

    buffer = BytesIO()
    wb.save(buffer)
    return buffer.getvalue()
