from typing import TypeVar

import structlog
from pydantic import BaseModel, ValidationError

from billing_exporter.shared.core.config import CHART_FIELD_BY_API_VERSION
from billing_exporter.shared.core.exceptions import ConfigurationError, DecodeError
from billing_exporter.modules.collection.domain.schemas import (
    ChangeStatus,
    ChartSeries,
    ChartSeriesArray,
    ClusterListing,
    DeploymentCosts,
    GroupListing,
    UserListing,
)

logger = structlog.get_logger()
ModelT = TypeVar("ModelT", bound=BaseModel)


def _decode(model: type[ModelT], body: bytes) -> ModelT:
    try:
        return model.model_validate_json(body)
    except ValidationError as exc:
        errors = exc.errors(include_url=False, include_input=False)
        first = errors[0] if errors else {}
        raise DecodeError(
            f"Malformed {model.__name__} payload: {first.get('msg', 'invalid')}",
            schema=model.__name__,
            details={
                "error_count": exc.error_count(),
                "location": ".".join(str(part) for part in first.get("loc", ())),
            },
        ) from exc


def decode_chart_series(body: bytes, api_version: str = "v1") -> ChartSeries:
    """
    Decodes the hourly-rate chart using the wrapper field of `api_version`.
    The other version's field name is never tried as a fallback.
    """
    field = CHART_FIELD_BY_API_VERSION.get(api_version)
    if field is None:
        raise ConfigurationError(
            f"Unsupported chart API version: {api_version}",
            details={"supported": sorted(CHART_FIELD_BY_API_VERSION)},
        )
    if field == "array":
        return _decode(ChartSeriesArray, body).normalized()
    return _decode(ChartSeries, body)


def decode_deployment_costs(body: bytes) -> DeploymentCosts:
    return _decode(DeploymentCosts, body)


def decode_group_listing(body: bytes) -> GroupListing:
    listing = _decode(GroupListing, body)
    if listing.total_count > len(listing.results):
        logger.warning(
            "group_listing_truncated",
            total_count=listing.total_count,
            returned=len(listing.results),
        )
    return listing


def decode_cluster_listing(body: bytes) -> ClusterListing:
    return _decode(ClusterListing, body)


def decode_user_listing(body: bytes) -> UserListing:
    return _decode(UserListing, body)


def decode_change_status(body: bytes) -> ChangeStatus:
    return _decode(ChangeStatus, body)
