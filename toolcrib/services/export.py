import io
from datetime import datetime
from urllib.parse import quote

from fastapi.responses import Response
from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.table import Table, TableStyleInfo

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def norm_str(v, default: str = "") -> str:
    if v is None:
        return default
    s = str(v).strip()
    return s if s else default


def norm_dt(v):
    # Excel 不认时区
    if isinstance(v, datetime):
        return v.replace(tzinfo=None) if v.tzinfo else v
    return None


def build_workbook(
    title: str,
    headers: list[str],
    rows: list[list],
    widths: list[int],
    table_name: str,
    datetime_columns: tuple[int, ...] = (),
) -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.title = title

    header_font = Font(bold=True)
    header_fill = PatternFill("solid", fgColor="DDDDDD")
    header_align = Alignment(horizontal="center", vertical="center")

    ws.append(headers)
    ws.row_dimensions[1].height = 26
    for col in range(1, len(headers) + 1):
        cell = ws.cell(row=1, column=col)
        cell.font = header_font
        cell.fill = header_fill
        cell.alignment = header_align

    for row in rows:
        ws.append(row)

    data_end_row = 1 + len(rows)
    ws.freeze_panes = "A2"

    for r in range(2, data_end_row + 1):
        for c in datetime_columns:
            ws.cell(row=r, column=c).number_format = "yyyy-mm-dd hh:mm:ss"

    for i, w in enumerate(widths, start=1):
        ws.column_dimensions[get_column_letter(i)].width = w

    # Table 至少要覆盖一行数据，空表只留表头样式
    if rows:
        last_col = get_column_letter(len(headers))
        table = Table(
            displayName=f"{table_name}_{datetime.now().strftime('%H%M%S')}",
            ref=f"A1:{last_col}{data_end_row}",
        )
        table.tableStyleInfo = TableStyleInfo(
            name="TableStyleMedium9",
            showFirstColumn=False,
            showLastColumn=False,
            showRowStripes=True,
            showColumnStripes=False,
        )
        ws.add_table(table)

    ws.append([])
    ws.append(["Exported at", datetime.now().strftime("%Y-%m-%d %H:%M:%S")])

    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


def xlsx_response(content: bytes, filename: str) -> Response:
    headers = {
        "Content-Disposition": f"attachment; filename=\"{filename}\"; filename*=UTF-8''{quote(filename)}"
    }
    return Response(content=content, media_type=XLSX_MEDIA_TYPE, headers=headers)
