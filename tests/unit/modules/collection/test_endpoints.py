from datetime import datetime, timedelta, timezone

from billing_exporter.modules.collection.domain import endpoints

NOW = datetime(2026, 10, 18, 14, 37, 12, 345678, tzinfo=timezone.utc)


def test_format_timestamp_is_utc_seconds_with_z():
    assert endpoints.format_timestamp(NOW) == "2026-10-18T14:37:12Z"


def test_format_timestamp_converts_offsets_and_naive_values():
    plus_two = timezone(timedelta(hours=2))
    assert (
        endpoints.format_timestamp(datetime(2026, 10, 18, 16, 0, tzinfo=plus_two))
        == "2026-10-18T14:00:00Z"
    )
    assert endpoints.format_timestamp(datetime(2026, 1, 2, 3, 4, 5)) == "2026-01-02T03:04:05Z"


def test_month_start():
    assert endpoints.month_start(NOW) == datetime(2026, 10, 1, tzinfo=timezone.utc)


def test_charts_path_open_and_bounded():
    since = NOW - timedelta(hours=1)

    assert endpoints.charts_path(since) == "charts?from=2026-10-18T13:37:12Z"
    assert (
        endpoints.charts_path(since, NOW)
        == "charts?from=2026-10-18T13:37:12Z&to=2026-10-18T14:37:12Z"
    )


def test_entity_paths():
    assert endpoints.deployments_path(NOW) == "deployments?from=2026-10-18T14:37:12Z"
    assert endpoints.groups_path(500) == "groups?itemsPerPage=500"
    assert (
        endpoints.database_users_path("5f1a", 500)
        == "groups/5f1a/databaseUsers?itemsPerPage=500"
    )
    assert endpoints.clusters_path("5f1a", 100) == "groups/5f1a/clusters?itemsPerPage=100"
    assert (
        endpoints.cluster_status_path("5f1a", "analytics-prod")
        == "groups/5f1a/clusters/analytics-prod/status"
    )
