"""
Records exchanged with the shop backend and the domain shapes cached by
the data client.

``API*`` models mirror the backend JSON (camelCase on the wire). The plain
models are what views consume and what the caches hold. ``convert_*``
functions decode one into the other.
"""

from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class APIModel(BaseModel):
    """Base for backend records: accepts camelCase and snake_case keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class DomainModel(BaseModel):
    """Base for cached domain shapes."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class UserRole(str, Enum):
    SUPER_ADMIN = "SUPER_ADMIN"
    ADMIN = "ADMIN"
    MANAGER = "MANAGER"
    STAFF = "STAFF"


class Shop(APIModel):
    id: str
    name: str
    slug: str
    logo: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    website: Optional[str] = None


class User(APIModel):
    id: str
    email: str
    name: str
    role: UserRole
    shop: Optional[Shop] = None


class AuthPayload(APIModel):
    """``data`` block of login, register and refresh responses."""

    user: Optional[User] = None
    access_token: str
    refresh_token: Optional[str] = None


class Pagination(APIModel):
    page: int = 1
    limit: int = 10
    total: int = 0
    total_pages: int = 1


# ---------------------------------------------------------------------------
# Customers
# ---------------------------------------------------------------------------


class APICustomer(APIModel):
    id: str
    name: str
    email: Optional[str] = None
    phone: str
    address: Optional[str] = None
    total_spent: float = 0
    total_orders: int = 0
    last_purchase: Optional[str] = None
    credit_balance: float = 0
    credit_limit: float = 0
    credit_due_date: Optional[str] = None
    credit_status: Literal["CLEAR", "ACTIVE", "OVERDUE"] = "CLEAR"
    shop_id: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class Customer(DomainModel):
    id: str
    name: str
    email: str = ""
    phone: str
    address: Optional[str] = None
    total_spent: float = 0
    total_orders: int = 0
    last_purchase: Optional[str] = None
    credit_balance: float = 0
    credit_limit: float = 0
    credit_due_date: Optional[str] = None
    credit_status: Literal["clear", "active", "overdue"] = "clear"
    credit_invoices: List[str] = Field(default_factory=list)


def convert_api_customer(api_customer: APICustomer) -> Customer:
    return Customer(
        id=api_customer.id,
        name=api_customer.name,
        email=api_customer.email or "",
        phone=api_customer.phone,
        address=api_customer.address,
        total_spent=api_customer.total_spent,
        total_orders=api_customer.total_orders,
        last_purchase=api_customer.last_purchase,
        credit_balance=api_customer.credit_balance,
        credit_limit=api_customer.credit_limit,
        credit_due_date=api_customer.credit_due_date,
        credit_status=api_customer.credit_status.lower(),
    )


# ---------------------------------------------------------------------------
# Products
# ---------------------------------------------------------------------------


class NamedRef(APIModel):
    id: str
    name: str


class APIProduct(APIModel):
    id: str
    name: str
    description: Optional[str] = None
    serial_number: str = ""
    barcode: Optional[str] = None
    price: float
    cost: float = 0
    stock: int = 0
    min_stock: int = 0
    category_id: Optional[str] = None
    brand_id: Optional[str] = None
    category: Optional[NamedRef] = None
    brand: Optional[NamedRef] = None
    shop_id: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class Product(DomainModel):
    id: str
    name: str
    description: str = ""
    serial_number: str = ""
    barcode: Optional[str] = None
    price: float
    cost_price: float = 0
    stock: int = 0
    low_stock_threshold: int = 0
    category: str = "Uncategorized"
    brand: str = "Unknown"
    total_sold: int = 0
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


def convert_api_product(api_product: APIProduct) -> Product:
    return Product(
        id=api_product.id,
        name=api_product.name,
        description=api_product.description or "",
        serial_number=api_product.serial_number,
        barcode=api_product.barcode,
        price=api_product.price,
        cost_price=api_product.cost,
        stock=api_product.stock,
        low_stock_threshold=api_product.min_stock,
        category=api_product.category.name if api_product.category else "Uncategorized",
        brand=api_product.brand.name if api_product.brand else "Unknown",
        created_at=api_product.created_at,
        updated_at=api_product.updated_at,
    )


# ---------------------------------------------------------------------------
# Invoices
# ---------------------------------------------------------------------------


class APIInvoiceItem(APIModel):
    id: Optional[str] = None
    product_id: Optional[str] = None
    product_name: str
    quantity: int
    unit_price: float
    original_price: Optional[float] = None
    discount: float = 0
    total: float
    warranty_due_date: Optional[str] = None


class APIInvoicePayment(APIModel):
    id: str
    invoice_id: str
    amount: float
    payment_date: str
    payment_method: Optional[str] = None
    notes: Optional[str] = None


class APIInvoice(APIModel):
    id: str
    invoice_number: Optional[str] = None
    customer_id: Optional[str] = None
    customer_name: str = ""
    subtotal: float = 0
    tax: float = 0
    discount: float = 0
    total: float = 0
    paid_amount: float = 0
    due_amount: float = 0
    status: Literal["UNPAID", "HALFPAY", "FULLPAID", "CANCELLED", "REFUNDED"] = "UNPAID"
    date: str
    due_date: Optional[str] = None
    payment_method: Optional[
        Literal["CASH", "CARD", "BANK_TRANSFER", "CHEQUE", "CREDIT"]
    ] = None
    sales_channel: Literal["ON_SITE", "ONLINE"] = "ON_SITE"
    notes: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    items: List[APIInvoiceItem] = Field(default_factory=list)
    payments: List[APIInvoicePayment] = Field(default_factory=list)


class InvoiceItem(DomainModel):
    product_id: Optional[str] = None
    product_name: str
    quantity: int
    unit_price: float
    original_price: Optional[float] = None
    total: float
    warranty_due_date: Optional[str] = None


class InvoicePayment(DomainModel):
    id: str
    invoice_id: str
    amount: float
    payment_date: str
    payment_method: Literal["cash", "card", "bank", "cheque"] = "cash"
    notes: Optional[str] = None


class Invoice(DomainModel):
    id: str
    api_id: str
    customer_id: Optional[str] = None
    customer_name: str = ""
    items: List[InvoiceItem] = Field(default_factory=list)
    subtotal: float = 0
    tax: float = 0
    total: float = 0
    status: Literal["unpaid", "halfpay", "fullpaid"] = "unpaid"
    paid_amount: float = 0
    date: str
    due_date: Optional[str] = None
    payment_method: Optional[Literal["cash", "card", "bank_transfer", "credit"]] = None
    sales_channel: Literal["on-site", "online"] = "on-site"
    payments: List[InvoicePayment] = Field(default_factory=list)
    last_payment_date: Optional[str] = None
    notes: Optional[str] = None


_INVOICE_STATUS = {"FULLPAID": "fullpaid", "HALFPAY": "halfpay"}

_INVOICE_PAYMENT_METHOD = {
    "CASH": "cash",
    "CARD": "card",
    "BANK_TRANSFER": "bank_transfer",
    "CREDIT": "credit",
    # Cheques are shown with bank transfers
    "CHEQUE": "bank_transfer",
}

_PAYMENT_RECORD_METHOD = {
    "cash": "cash",
    "card": "card",
    "bank_transfer": "bank",
    "bank": "bank",
    "banktransfer": "bank",
    "cheque": "cheque",
    "check": "cheque",
}


def normalize_status(status: str) -> str:
    """CANCELLED and REFUNDED invoices display as unpaid."""
    return _INVOICE_STATUS.get(status, "unpaid")


def normalize_payment_method(method: Optional[str]) -> Optional[str]:
    if not method:
        return None
    return _INVOICE_PAYMENT_METHOD.get(method, "cash")


def normalize_sales_channel(channel: Optional[str]) -> str:
    return "online" if channel == "ONLINE" else "on-site"


def convert_api_invoice(api_invoice: APIInvoice) -> Invoice:
    payments = [
        InvoicePayment(
            id=payment.id,
            invoice_id=payment.invoice_id,
            amount=payment.amount,
            payment_date=payment.payment_date,
            payment_method=_PAYMENT_RECORD_METHOD.get(
                (payment.payment_method or "cash").lower(), "cash"
            ),
            notes=payment.notes,
        )
        for payment in api_invoice.payments
    ]
    return Invoice(
        id=api_invoice.invoice_number or api_invoice.id,
        api_id=api_invoice.id,
        customer_id=api_invoice.customer_id,
        customer_name=api_invoice.customer_name,
        items=[
            InvoiceItem(
                product_id=item.product_id,
                product_name=item.product_name,
                quantity=item.quantity,
                unit_price=item.unit_price,
                original_price=item.original_price,
                total=item.total,
                warranty_due_date=item.warranty_due_date,
            )
            for item in api_invoice.items
        ],
        subtotal=api_invoice.subtotal,
        tax=api_invoice.tax,
        total=api_invoice.total,
        status=normalize_status(api_invoice.status),
        paid_amount=api_invoice.paid_amount,
        date=api_invoice.date,
        due_date=api_invoice.due_date,
        payment_method=normalize_payment_method(api_invoice.payment_method),
        sales_channel=normalize_sales_channel(api_invoice.sales_channel),
        payments=payments,
        last_payment_date=payments[0].payment_date if payments else None,
        notes=api_invoice.notes,
    )


# ---------------------------------------------------------------------------
# Suppliers
# ---------------------------------------------------------------------------


class APISupplierCount(APIModel):
    grns: Optional[int] = None


class APISupplier(APIModel):
    id: str
    name: str
    contact_person: Optional[str] = None
    email: Optional[str] = None
    phone: str
    address: Optional[str] = None
    is_active: bool = True
    shop_id: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    count: Optional[APISupplierCount] = Field(default=None, alias="_count")
    total_purchases: Optional[float] = None
    total_orders: Optional[int] = None
    last_order: Optional[str] = None


class Supplier(DomainModel):
    id: str
    api_id: str
    name: str
    company: str
    contact_person: Optional[str] = None
    email: str = ""
    phone: str
    address: Optional[str] = None
    total_purchases: float = 0
    total_orders: int = 0
    last_order: Optional[str] = None
    is_active: bool = True


def convert_api_supplier(api_supplier: APISupplier) -> Supplier:
    grn_count = api_supplier.count.grns if api_supplier.count else None
    return Supplier(
        id=api_supplier.id,
        api_id=api_supplier.id,
        name=api_supplier.contact_person or api_supplier.name,
        company=api_supplier.name,
        contact_person=api_supplier.contact_person,
        email=api_supplier.email or "",
        phone=api_supplier.phone,
        address=api_supplier.address,
        total_purchases=api_supplier.total_purchases or 0,
        total_orders=api_supplier.total_orders or grn_count or 0,
        last_order=api_supplier.last_order,
        is_active=api_supplier.is_active,
    )
