"""Customer API service."""

from ..models import APICustomer, Customer, convert_api_customer
from .base import ResourceService


class CustomerService(ResourceService[APICustomer, Customer]):
    path = "/customers"
    record_type = APICustomer
    converter = convert_api_customer
