"""
Shared plumbing for the read-only domain services.

Each service lists and reads one backend resource through the
``AuthGateway``, accepting an optional ``shop_id`` on every call, and
decodes records into the domain shapes the caches hold.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, List, Optional, Type, TypeVar

from pydantic import ValidationError

from ..api_client import AuthGateway, handle_auth_response
from ..exceptions import ApiError
from ..logging_config import get_logger
from ..models import APIModel, Pagination

logger = get_logger(__name__)

RecordT = TypeVar("RecordT", bound=APIModel)
DomainT = TypeVar("DomainT")


@dataclass
class ListResult(Generic[RecordT]):
    """One page of API records."""

    records: List[RecordT]
    pagination: Pagination


class ResourceService(Generic[RecordT, DomainT]):
    """
    List/read access to a backend collection.

    Subclasses set ``path``, ``record_type`` and ``converter``.
    """

    path: str = ""
    record_type: Type[RecordT]
    converter: Callable[[RecordT], DomainT]

    # Page size used when a whole collection is loaded for caching
    collection_limit = 1000

    def __init__(self, gateway: AuthGateway) -> None:
        self.gateway = gateway

    def _decode(self, raw: Any) -> RecordT:
        try:
            return self.record_type.model_validate(raw)
        except ValidationError as e:
            raise ApiError(
                200,
                f"Unexpected {self.path.strip('/')} record from backend",
                details={"errors": e.error_count()},
            ) from e

    async def get_all(
        self,
        shop_id: Optional[str] = None,
        page: Optional[int] = None,
        limit: Optional[int] = None,
        search: Optional[str] = None,
        **filters: Any,
    ) -> ListResult[RecordT]:
        """
        List records, optionally for a specific shop.

        Args:
            shop_id: Shop to read (SUPER_ADMIN); None for the user's own shop
            page: Page number
            limit: Page size
            search: Free-text filter
            **filters: Extra query parameters (camelCase, passed through)

        Returns:
            Records and pagination info
        """
        params: Dict[str, Any] = {}
        if page:
            params["page"] = page
        if limit:
            params["limit"] = limit
        if search:
            params["search"] = search
        params.update({key: value for key, value in filters.items() if value is not None})
        if shop_id:
            params["shopId"] = shop_id

        response = await self.gateway.get(self.path, params=params)
        result = handle_auth_response(response)

        raw_records = result.get("data") or []
        records = [self._decode(raw) for raw in raw_records]
        pagination = Pagination.model_validate(
            result.get("pagination")
            or {"page": 1, "limit": len(records), "total": len(records), "total_pages": 1}
        )

        logger.debug(
            f"Loaded {len(records)} {self.path.strip('/')} from API",
            extra={"extra_fields": {"shop_id": shop_id or "own"}},
        )
        return ListResult(records=records, pagination=pagination)

    async def get_by_id(self, record_id: str, shop_id: Optional[str] = None) -> RecordT:
        params = {"shopId": shop_id} if shop_id else None
        response = await self.gateway.get(f"{self.path}/{record_id}", params=params)
        result = handle_auth_response(response)
        return self._decode(result.get("data"))

    async def fetch_collection(self, shop_id: Optional[str] = None) -> List[DomainT]:
        """Load and decode the whole collection for a shop."""
        result = await self.get_all(shop_id=shop_id, limit=self.collection_limit)
        return [type(self).converter(record) for record in result.records]
