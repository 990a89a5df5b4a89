from datetime import datetime, timezone


def utcnow() -> datetime:
    """DB保存用の現在時刻 (UTC, tzinfoなし)"""
    return datetime.now(timezone.utc).replace(tzinfo=None)
