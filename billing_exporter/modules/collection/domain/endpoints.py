"""Relative paths of the upstream API endpoints polled by a collection pass."""

from datetime import datetime, timezone
from typing import Optional


def format_timestamp(moment: datetime) -> str:
    """RFC3339 in UTC with second precision and a 'Z' suffix."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def month_start(moment: datetime) -> datetime:
    moment = moment.astimezone(timezone.utc)
    return moment.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def charts_path(since: datetime, until: Optional[datetime] = None) -> str:
    path = f"charts?from={format_timestamp(since)}"
    if until is not None:
        path += f"&to={format_timestamp(until)}"
    return path


def deployments_path(since: datetime) -> str:
    return f"deployments?from={format_timestamp(since)}"


def groups_path(items_per_page: int) -> str:
    return f"groups?itemsPerPage={items_per_page}"


def database_users_path(group_id: str, items_per_page: int) -> str:
    return f"groups/{group_id}/databaseUsers?itemsPerPage={items_per_page}"


def clusters_path(group_id: str, items_per_page: int) -> str:
    return f"groups/{group_id}/clusters?itemsPerPage={items_per_page}"


def cluster_status_path(group_id: str, cluster_name: str) -> str:
    return f"groups/{group_id}/clusters/{cluster_name}/status"
