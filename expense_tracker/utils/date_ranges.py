from datetime import date, timedelta


def get_today_range(today: date | None = None) -> tuple[date, date]:
    today = today or date.today()
    return today, today


def get_this_week_range(today: date | None = None) -> tuple[date, date]:
    today = today or date.today()
    start = today - timedelta(days=today.weekday())  # Monday
    return start, today


def get_last_week_range(today: date | None = None) -> tuple[date, date]:
    today = today or date.today()
    this_monday = today - timedelta(days=today.weekday())
    return this_monday - timedelta(days=7), this_monday - timedelta(days=1)


def get_this_month_range(today: date | None = None) -> tuple[date, date]:
    today = today or date.today()
    return today.replace(day=1), today


def get_month_range(year: int, month: int) -> tuple[date, date]:
    """First and last day of the given month."""
    start = date(year, month, 1)
    if month == 12:
        end = date(year + 1, 1, 1)
    else:
        end = date(year, month + 1, 1)
    return start, end - timedelta(days=1)


def get_last_month_range(today: date | None = None) -> tuple[date, date]:
    today = today or date.today()
    year, month = shift_month(today.year, today.month, -1)
    return get_month_range(year, month)


def shift_month(year: int, month: int, delta: int) -> tuple[int, int]:
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1
