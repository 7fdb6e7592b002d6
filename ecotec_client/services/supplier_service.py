"""Supplier API service."""

from ..models import APISupplier, Supplier, convert_api_supplier
from .base import ResourceService


class SupplierService(ResourceService[APISupplier, Supplier]):
    path = "/suppliers"
    record_type = APISupplier
    converter = convert_api_supplier
