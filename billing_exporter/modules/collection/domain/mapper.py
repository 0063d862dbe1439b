"""
Maps decoded API responses to gauge emissions.

Every function here is pure apart from a warning log when a response repeats
a label set. Label order is the order the labels are listed in each function
and stays stable between calls; consumers identify series by the label set.
Per-project series carry the group id in the `project` label.
"""

from __future__ import annotations

from dataclasses import dataclass

import structlog

from billing_exporter.modules.collection.domain.schemas import (
    ChangeStatus,
    ChartSeries,
    DeploymentCosts,
    Group,
    UserListing,
    UserScope,
)

logger = structlog.get_logger()

Labels = tuple[tuple[str, str], ...]

# Metric names
HOURLY_RATE = "hourly_rate"
MONTHLY_COST_TOTAL = "monthly_cost_total"
MONTHLY_HOURLY_RATE = "monthly_hourly_rate"
ITEMIZED_MONTHLY_COST_TOTAL = "itemized_monthly_cost_total"
MONTHLY_COST_GRAND_TOTAL = "monthly_cost_grand_total"
PROJECT_USERS_TOTAL = "project_users_total"
PROJECT_USER = "project_user"
CLUSTER_STATUS = "cluster_status"

# An unscoped database user can reach every cluster in the project
UNSCOPED_USER_SCOPE = UserScope(name="all", type="CLUSTER")

CHANGE_STATUS_ORDINALS = {
    "APPLIED": 0,
    "PENDING": 1,
}
UNKNOWN_CHANGE_STATUS_ORDINAL = 2


@dataclass(frozen=True)
class MetricEmission:
    name: str
    value: float
    labels: Labels = ()

    @property
    def identity(self) -> tuple[str, frozenset[tuple[str, str]]]:
        return self.name, frozenset(self.labels)


class _EmissionBatch:
    """Collects emissions, keeping the first value for a repeated label set."""

    def __init__(self, source: str):
        self._source = source
        self._seen: set[tuple[str, frozenset[tuple[str, str]]]] = set()
        self.emissions: list[MetricEmission] = []

    def add(self, name: str, value: float, *labels: tuple[str, str]) -> None:
        emission = MetricEmission(name=name, value=float(value), labels=tuple(labels))
        if emission.identity in self._seen:
            logger.warning(
                "duplicate_metric_emission_dropped",
                source=self._source,
                metric=name,
                labels=dict(labels),
            )
            return
        self._seen.add(emission.identity)
        self.emissions.append(emission)


def map_chart_series(series: ChartSeries) -> list[MetricEmission]:
    batch = _EmissionBatch("charts")
    if not series.data:
        return batch.emissions

    # A one-hour window yields a single bucket
    for value in series.data[0].values:
        batch.add(HOURLY_RATE, value.value, ("id", value.id), ("name", value.name))
    return batch.emissions


def map_deployment_costs(costs: DeploymentCosts) -> list[MetricEmission]:
    batch = _EmissionBatch("deployments")
    batch.add(MONTHLY_COST_GRAND_TOTAL, costs.total_cost)
    for deployment in costs.deployments:
        ident = (("id", deployment.id), ("name", deployment.name))
        batch.add(MONTHLY_COST_TOTAL, deployment.costs_total, *ident)
        batch.add(MONTHLY_HOURLY_RATE, deployment.hourly_rate, *ident)
        for dimension in deployment.dimensions:
            batch.add(
                ITEMIZED_MONTHLY_COST_TOTAL,
                dimension.cost,
                *ident,
                ("item", dimension.type),
            )
    return batch.emissions


def effective_scopes(scopes: list[UserScope]) -> list[UserScope]:
    return list(scopes) if scopes else [UNSCOPED_USER_SCOPE]


def map_user_listing(group: Group, users: UserListing) -> list[MetricEmission]:
    batch = _EmissionBatch("databaseUsers")
    batch.add(PROJECT_USERS_TOTAL, len(users.results), ("project", group.id))
    for user in users.results:
        for scope in effective_scopes(user.scopes):
            batch.add(
                PROJECT_USER,
                1,
                ("username", user.username),
                ("project", group.id),
                ("scope", scope.name),
            )
    return batch.emissions


def change_status_ordinal(status: str) -> int:
    return CHANGE_STATUS_ORDINALS.get(status, UNKNOWN_CHANGE_STATUS_ORDINAL)


def map_change_status(
    group: Group, cluster_name: str, status: ChangeStatus
) -> list[MetricEmission]:
    return [
        MetricEmission(
            name=CLUSTER_STATUS,
            value=float(change_status_ordinal(status.change_status)),
            labels=(("project", group.id), ("cluster", cluster_name)),
        )
    ]
