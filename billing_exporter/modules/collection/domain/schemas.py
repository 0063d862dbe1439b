"""
Response schemas for the upstream billing and management API.

Each endpoint has exactly one schema. Unknown fields are ignored and missing
required fields fail validation. Wire names are camelCase; attributes are
snake_case with aliases.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

UINT16_MAX = 2**16 - 1
UINT64_MAX = 2**64 - 1


class WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)


# --- Billing charts ---
class ChartValue(WireModel):
    id: str
    name: str
    value: float


class ChartBucket(WireModel):
    timestamp: int = Field(ge=0, le=UINT64_MAX)
    values: list[ChartValue]


class ChartSeries(WireModel):
    """Hourly-rate chart. One bucket is expected per one-hour window."""

    data: list[ChartBucket]


class ChartSeriesArray(WireModel):
    """v2 wire shape of ChartSeries, where the bucket list is named 'array'."""

    array: list[ChartBucket]

    def normalized(self) -> ChartSeries:
        return ChartSeries(data=self.array)


# --- Deployment costs ---
class CostDimension(WireModel):
    type: str
    cost: float


class DeploymentCost(WireModel):
    id: str
    name: str
    costs_total: float = Field(alias="costsTotal")
    hourly_rate: float = Field(alias="hourlyRate")
    dimensions: list[CostDimension] = Field(default_factory=list)


class DeploymentCosts(WireModel):
    total_cost: float = Field(alias="totalCost")
    deployments: list[DeploymentCost]


# --- Groups / clusters / users ---
class Group(WireModel):
    id: str
    name: str


class GroupListing(WireModel):
    results: list[Group]
    total_count: int = Field(alias="totalCount", ge=0, le=UINT16_MAX)


class Cluster(WireModel):
    name: str


class ClusterListing(WireModel):
    results: list[Cluster]


class UserScope(WireModel):
    name: str
    type: str


class DatabaseUser(WireModel):
    username: str
    scopes: list[UserScope] = Field(default_factory=list)


class UserListing(WireModel):
    results: list[DatabaseUser]


class ChangeStatus(WireModel):
    # APPLIED | PENDING, other values are tolerated
    change_status: str = Field(alias="changeStatus")
