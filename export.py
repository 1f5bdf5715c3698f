"""Spreadsheet export of batch range reports.

Builds an ``.xlsx`` workbook with one row per student and one column per day,
colour-coding each status cell, using openpyxl.
"""

import io

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from dates import format_date
from models import STATUS_ABSENT, STATUS_PRESENT
from reports import NOT_MARKED, BatchRangeReport

GREEN_FILL = PatternFill(start_color="C6EFCE", end_color="C6EFCE", fill_type="solid")
RED_FILL = PatternFill(start_color="FFC7CE", end_color="FFC7CE", fill_type="solid")
GREY_FILL = PatternFill(start_color="EDEDED", end_color="EDEDED", fill_type="solid")
HEADER_FILL = PatternFill(start_color="E0E0E0", end_color="E0E0E0", fill_type="solid")

GREEN_FONT = Font(color="006100")
RED_FONT = Font(color="9C0006")
GREY_FONT = Font(color="595959")

THIN_BORDER = Border(left=Side(style='thin'), right=Side(style='thin'),
                     top=Side(style='thin'), bottom=Side(style='thin'))

STATUS_STYLES = {
    STATUS_PRESENT: ("P", GREEN_FILL, GREEN_FONT),
    STATUS_ABSENT: ("A", RED_FILL, RED_FONT),
    NOT_MARKED: ("-", GREY_FILL, GREY_FONT),
}

HEADER_ROW = 3


def batch_range_report_to_xlsx(report: BatchRangeReport, title: str = "Attendance Report") -> io.BytesIO:
    """Render ``report`` as a workbook and return it rewound, ready to send."""
    wb = Workbook()
    ws = wb.active
    ws.title = "Range Report"

    ws['A1'] = title
    ws['A1'].font = Font(size=14, bold=True)

    headers = ["Roll No", "Name"] + [format_date(d) for d in report.dates] + ["Percent"]
    for col_num, header in enumerate(headers, 1):
        cell = ws.cell(row=HEADER_ROW, column=col_num, value=header)
        cell.font = Font(bold=True)
        cell.border = THIN_BORDER
        cell.fill = HEADER_FILL
        cell.alignment = Alignment(horizontal='center')

    for row_num, student in enumerate(report.students, HEADER_ROW + 1):
        ws.cell(row=row_num, column=1, value=student.roll_no).border = THIN_BORDER
        ws.cell(row=row_num, column=2, value=student.name).border = THIN_BORDER
        for offset, day in enumerate(report.dates):
            status = student.tally.status_by_date[day]
            label, fill, font = STATUS_STYLES[status]
            cell = ws.cell(row=row_num, column=3 + offset, value=label)
            cell.fill = fill
            cell.font = font
            cell.border = THIN_BORDER
            cell.alignment = Alignment(horizontal='center')
        ws.cell(row=row_num, column=3 + len(report.dates), value=student.percent / 100).number_format = '0%'

    ws.column_dimensions['A'].width = 14
    ws.column_dimensions['B'].width = 28
    for col in range(3, len(headers) + 1):
        ws.column_dimensions[get_column_letter(col)].width = 11
    ws.freeze_panes = ws.cell(row=HEADER_ROW + 1, column=3)

    output = io.BytesIO()
    wb.save(output)
    output.seek(0)
    return output


__all__ = ["batch_range_report_to_xlsx"]
