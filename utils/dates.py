from datetime import date, datetime, timedelta


def parse_date(value) -> date:
    # Expect ISO format like "2026-01-20"; a full timestamp is cut to its date
    if isinstance(value, date):
        return value
    return datetime.fromisoformat(str(value).strip()).date()


def date_window(start_str, end_str, default_days: int = 30):
    start = parse_date(start_str) if start_str else datetime.utcnow().date()
    end = parse_date(end_str) if end_str else start + timedelta(days=default_days)
    return start, end
