"""Service catalog: providers publish the listings negotiations are opened on."""

from __future__ import annotations

from decimal import Decimal

import structlog

from flancer.directory.service import DirectoryService
from flancer.domain.errors import (
    InvalidCounterparty,
    InvalidServiceListing,
    RecordNotFound,
    ServiceNotFound,
)
from flancer.domain.models import ServiceListing, new_id
from flancer.resilience.timeouts import bounded
from flancer.state.store import RecordStore

logger = structlog.get_logger()


class ServiceCatalog:
    """Create and look up service listings in the ``services`` table.

    Args:
        store: The record store.
        directory: Resolves the provider publishing a listing.
        call_timeout: Per collaborator call timeout in seconds.
    """

    def __init__(
        self, store: RecordStore, directory: DirectoryService, *, call_timeout: float = 5.0
    ) -> None:
        self._store = store
        self._directory = directory
        self._timeout = call_timeout

    async def create_listing(
        self,
        provider_id: str,
        service_name: str,
        min_price: Decimal,
        max_price: Decimal,
    ) -> ServiceListing:
        """Publish a listing priced within ``[min_price, max_price]``.

        Raises:
            InvalidServiceListing: If the name is blank, a price is not
                positive, or the minimum exceeds the maximum.
            InvalidCounterparty: If the provider does not resolve.
        """
        name = service_name.strip()
        if not name:
            raise InvalidServiceListing("Service name must not be empty")
        if isinstance(min_price, float) or isinstance(max_price, float):
            raise TypeError("Use Decimal or string, not float, for monetary values")
        if min_price <= 0 or max_price <= 0:
            raise InvalidServiceListing("Minimum and maximum prices must be positive")
        if min_price > max_price:
            raise InvalidServiceListing(
                f"Minimum price ({min_price}) cannot be greater than maximum price ({max_price})"
            )

        exists = await bounded(
            self._directory.exists(provider_id),
            operation="directory.exists",
            timeout=self._timeout,
        )
        if not exists:
            raise InvalidCounterparty(provider_id)

        listing = ServiceListing(
            service_id=new_id(),
            service_name=name,
            provider_id=provider_id,
            min_price=min_price,
            max_price=max_price,
        )
        row = await bounded(
            self._store.insert("services", listing.model_dump(mode="json")),
            operation="store.insert(services)",
            timeout=self._timeout,
        )
        logger.info(
            "Service listing created",
            service_id=listing.service_id,
            provider_id=provider_id,
            min_price=str(min_price),
            max_price=str(max_price),
        )
        return ServiceListing.model_validate(row)

    async def get_listing(self, service_id: str) -> ServiceListing:
        """Return a listing by id.

        Raises:
            ServiceNotFound: If the listing does not exist.
        """
        try:
            row = await bounded(
                self._store.get("services", service_id),
                operation="store.get(services)",
                timeout=self._timeout,
            )
        except RecordNotFound as exc:
            raise ServiceNotFound(service_id) from exc
        return ServiceListing.model_validate(row)
