"""Bulk participant import from pasted text or a spreadsheet (column A)."""
import logging

import pandas as pd

from luckspin.errors import ImportParseError

logger = logging.getLogger(__name__)

ALLOWED_SPREADSHEET_EXTENSIONS = {'xlsx', 'xlsm'}
HEADER_CELLS = {'name', 'username'}


def allowed_file(filename, allowed_extensions=ALLOWED_SPREADSHEET_EXTENSIONS):
    """Check if file has allowed extension"""
    return '.' in filename and \
           filename.rsplit('.', 1)[1].lower() in allowed_extensions


def parse_names(text):
    """One participant per non-blank line"""
    return [line.strip() for line in (text or '').splitlines() if line.strip()]


def parse_spreadsheet(stream, filename='upload.xlsx'):
    """
    Read names from column A of the first worksheet. Blank cells and header
    cells ("name", "username") are skipped.
    """
    try:
        df = pd.read_excel(stream, sheet_name=0, header=None, dtype=str, engine='openpyxl')
    except Exception as e:
        logger.error(f"💥 Spreadsheet parse error for '{filename}': {e}")
        raise ImportParseError("Failed to parse Excel file. Ensure it is a valid .xlsx file.") from e

    if df.empty:
        raise ImportParseError("No data found in Column A of the first sheet.")

    names = []
    for value in df.iloc[:, 0].tolist():
        if pd.isna(value):
            continue
        name = str(value).strip()
        if name and name.lower() not in HEADER_CELLS:
            names.append(name)

    if not names:
        raise ImportParseError("No data found in Column A of the first sheet.")

    logger.info(f"📊 Read {len(names)} names from '{filename}'")
    return names
