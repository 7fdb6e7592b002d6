"""Product API service."""

from typing import Optional

from ..models import APIProduct, Product, convert_api_product
from .base import ListResult, ResourceService


class ProductService(ResourceService[APIProduct, Product]):
    path = "/products"
    record_type = APIProduct
    converter = convert_api_product

    async def get_by_category(
        self,
        category_id: str,
        shop_id: Optional[str] = None,
    ) -> ListResult[APIProduct]:
        return await self.get_all(shop_id=shop_id, categoryId=category_id)
