"""Invoice API service."""

from typing import List, Optional

from ..models import APIInvoice, Invoice, convert_api_invoice
from .base import ResourceService


class InvoiceService(ResourceService[APIInvoice, Invoice]):
    path = "/invoices"
    record_type = APIInvoice
    converter = convert_api_invoice

    async def fetch_collection(self, shop_id: Optional[str] = None) -> List[Invoice]:
        """Newest invoices first."""
        result = await self.get_all(
            shop_id=shop_id,
            page=1,
            limit=self.collection_limit,
            sortBy="date",
            sortOrder="desc",
        )
        return [convert_api_invoice(record) for record in result.records]
