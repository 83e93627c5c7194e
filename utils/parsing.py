"""Safe parsing helpers for list/number/date values read from storage."""

import ast
import json
import math
from datetime import datetime

import pandas as pd


# Lists are stored as JSON text; older rows may hold python literals or ";"-separated text
def parse_list(val):
    """Parse list into normalized data."""
    if isinstance(val, (list, tuple)):
        return [str(x).strip() for x in val if str(x).strip()]
    if val is None or (not isinstance(val, str) and pd.isna(val)):
        return []
    text = str(val).strip()
    if not text:
        return []
    try:
        parsed = json.loads(text)
    except ValueError:
        try:
            parsed = ast.literal_eval(text)
        except (ValueError, SyntaxError):
            # Plain text, author names can contain commas so split on ";"
            return [x.strip() for x in text.split(";") if x.strip()]
    if isinstance(parsed, (list, tuple)):
        return [str(x).strip() for x in parsed if str(x).strip()]
    return [str(parsed).strip()]


def parse_int(val, default=None):
    if val is None:
        return default
    try:
        number = float(val)
    except (TypeError, ValueError):
        return default
    if math.isnan(number):
        return default
    return int(number)


def parse_bool(val, default=False):
    if val is None:
        return default
    if isinstance(val, bool):
        return val
    if isinstance(val, (int, float)):
        return val != 0 and not (isinstance(val, float) and math.isnan(val))
    text = str(val).strip().lower()
    if text in {"1", "true", "yes", "on"}:
        return True
    if text in {"0", "false", "no", "off", ""}:
        return False
    return default


def parse_datetime(val):
    if val is None or isinstance(val, datetime):
        return val
    text = str(val).strip()
    if not text or text.lower() in {"nan", "none", "nat"}:
        return None
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None
