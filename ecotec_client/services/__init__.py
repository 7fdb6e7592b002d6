"""Domain services that read backend collections through the auth gateway."""

from .base import ListResult, ResourceService
from .customer_service import CustomerService
from .invoice_service import InvoiceService
from .product_service import ProductService
from .supplier_service import SupplierService

__all__ = [
    "CustomerService",
    "InvoiceService",
    "ListResult",
    "ProductService",
    "ResourceService",
    "SupplierService",
]
