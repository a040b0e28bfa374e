"""
Database Schemas for the Wood Art Gallery

Each Pydantic model corresponds to one MongoDB collection.
Collection name is the lowercase of the class name.
"""
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field

Role = Literal["customer", "designer", "staff-designer", "admin", "inventory", "financial", "delivery"]

Material = Literal["MDF", "HDF", "Mahogany", "Solid Wood", "Plywood"]
BoardSize = Literal["6 x 4 inches", "8 x 6 inches", "12 x 8 inches"]
Thickness = Literal["3mm-4mm", "5mm-6mm", "8mm-10mm"]
Color = Literal["brown", "blue", "tan"]

MATERIALS = ["MDF", "HDF", "Mahogany", "Solid Wood", "Plywood"]
BOARD_SIZES = ["6 x 4 inches", "8 x 6 inches", "12 x 8 inches"]
THICKNESSES = ["3mm-4mm", "5mm-6mm", "8mm-10mm"]
COLORS = ["brown", "blue", "tan"]

MONTHS = [
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
]

OrderPaymentMethod = Literal["cash_on_delivery", "bank_transfer"]
CustomPaymentMethod = Literal["cash", "bank"]
PaymentStatus = Literal["pending", "paid", "failed"]
OrderStatus = Literal["pending", "confirmed", "preparing", "ready_for_delivery", "delivered", "cancelled"]
OrderDeliveryStatus = Literal["not_assigned", "assigned", "picked_up", "in_transit", "delivered"]
CustomOrderStatus = Literal["pending", "accepted", "in_progress", "completed", "cancelled"]
CustomDeliveryStatus = Literal["not_assigned", "ready_for_delivery", "picked_up", "delivered"]

DEFAULT_DELIVERY_FEE = 250.0


class User(BaseModel):
    name: str = Field(..., description="Full name")
    email: EmailStr
    password_hash: str = Field(..., description="Hashed password")
    phone: Optional[str] = None
    address: Optional[str] = None
    role: Role = "customer"


class Design(BaseModel):
    """Marketplace item uploaded by a designer. quantity is the sellable stock counter."""
    designer_id: str
    item_name: str
    description: str
    price: float = Field(..., ge=0)
    quantity: int = Field(..., ge=0)
    board_color: str
    board_thickness: str
    material: str
    board_size: str
    image_url: str
    image_id: Optional[str] = None
    item_code: Optional[str] = None


class OrderItem(BaseModel):
    item_id: str = Field(..., description="Line item id, unique within the order")
    design_id: str
    item_name: str
    price: float
    quantity: int = Field(..., ge=1)
    subtotal: float
    image_url: Optional[str] = None
    designer_id: str
    designer_name: str
    material: Optional[str] = None
    board_size: Optional[str] = None
    board_color: Optional[str] = None
    board_thickness: Optional[str] = None
    description: Optional[str] = None


class Order(BaseModel):
    """Marketplace order built from cart or single-item checkout."""
    order_id: Optional[str] = None
    customer_id: str
    customer_name: str
    customer_email: str
    customer_phone: Optional[str] = None
    customer_address: Optional[str] = None
    items: List[OrderItem]
    total_amount: float
    delivery_fee: float = DEFAULT_DELIVERY_FEE
    payment_method: OrderPaymentMethod
    payment_status: PaymentStatus = "pending"
    status: OrderStatus = "pending"
    delivery_status: OrderDeliveryStatus = "not_assigned"
    delivery_person_id: Optional[str] = None
    bank_slip_id: Optional[str] = None
    bank_slip_filename: Optional[str] = None
    bank_slip_url: Optional[str] = None
    designer_notified: bool = False
    stock_deducted: bool = False
    cash_collected: bool = False
    cash_collected_at: Optional[datetime] = None
    cash_collected_by: Optional[str] = None
    payment_released: bool = False
    delivery_transaction_id: Optional[str] = None
    release_date: Optional[datetime] = None
    order_date: Optional[datetime] = None
    delivery_date: Optional[datetime] = None
    notes: Optional[str] = None


class CustomOrder(BaseModel):
    """One-off bespoke board ordered with a reference image."""
    order_id: Optional[str] = None
    customer_name: str
    customer_email: str
    customer_phone: str = ""
    customer_address: str = ""
    board_color: str
    material: str
    board_size: str
    board_thickness: str
    reference_image_id: Optional[str] = None
    reference_image_filename: Optional[str] = None
    reference_image_url: Optional[str] = None
    description: str = ""
    status: CustomOrderStatus = "pending"
    delivery_status: CustomDeliveryStatus = "not_assigned"
    staff_designer_id: Optional[str] = None
    estimated_price: float = 0
    final_price: float = 0
    delivery_fee: float = DEFAULT_DELIVERY_FEE
    payment_method: CustomPaymentMethod = "cash"
    payment_status: PaymentStatus = "pending"
    cash_collected: bool = False
    payment_released: bool = False
    delivery_transaction_id: Optional[str] = None
    release_date: Optional[datetime] = None
    delivery_date: Optional[datetime] = None
    notes: Optional[str] = None
    bank_slip_id: Optional[str] = None
    bank_slip_filename: Optional[str] = None
    bank_slip_url: Optional[str] = None


class DesignerPayment(BaseModel):
    """
    One released payment per order line item.
    Unique on (order_id, order_item_id).
    """
    order_id: str
    order_mongo_id: str
    order_item_id: str
    order_item_design_id: str
    designer_id: str
    designer_name: str
    designer_email: str
    customer_name: str
    customer_email: str
    item_name: str
    quantity: int
    item_subtotal: float
    delivery_fee: float
    commission: float
    designer_amount: float
    released_by: Optional[str] = None
    status: Literal["released"] = "released"
    released_at: datetime


class Stock(BaseModel):
    material: Material
    board_size: BoardSize
    thickness: Thickness
    color: Color
    price: float = Field(0, ge=0)
    available_quantity: int = Field(0, ge=0)
    reorder_level: int = Field(100, ge=0)


class StockRelease(BaseModel):
    designer_name: str
    designer_email: str
    material: Material
    board_size: BoardSize
    thickness: Thickness
    color: Color
    quantity: int = Field(..., ge=1)
    release_date: datetime
    notes: Optional[str] = None
    status: Literal["pending", "completed"] = "completed"


class MaterialRequest(BaseModel):
    staff_designer_id: Optional[str] = None
    staff_designer_name: str = "Staff Designer"
    staff_designer_email: str = "staff@gmail.com"
    material: Material
    board_size: BoardSize
    thickness: Thickness
    color: Color
    quantity: int = Field(..., ge=1)
    description: str = Field("", max_length=500)
    status: Literal["pending", "approved", "fulfilled", "rejected"] = "pending"
    admin_notes: Optional[str] = None
    fulfilled_at: Optional[datetime] = None
    fulfilled_by: Optional[str] = None


class Supplier(BaseModel):
    name: str
    email: str
    phone: str
    address: str
    active: bool = True


class PurchaseOrder(BaseModel):
    po_code: Optional[str] = None
    supplier_id: str
    item_name: str = Field(..., description="Material being ordered")
    quantity: int = Field(..., ge=1)
    board_size: str
    thickness: str
    color: str
    description: Optional[str] = None
    status: Literal["pending", "approved", "ordered", "received", "cancelled"] = "pending"
    received_at: Optional[datetime] = None


class SupplierPayment(BaseModel):
    supplier_name: str
    supplier_email: str
    item: str
    color: str
    size: str
    thickness: str
    quantity: int = Field(..., ge=1)
    paid_amount: float = Field(..., ge=0)
    transaction_date: datetime
    transaction_id: str
    purchase_order_id: Optional[str] = None
    status: Literal["pending", "paid", "overdue"] = "paid"


class StaffDesignerSalary(BaseModel):
    staff_designer_name: str
    staff_designer_email: str
    year: int = Field(..., ge=2025, le=2030)
    month: Literal[
        "January", "February", "March", "April", "May", "June",
        "July", "August", "September", "October", "November", "December",
    ]
    basic_salary: float = Field(..., ge=0, le=200000)
    allowances: float = Field(0, ge=0)
    tax_percentage: float = Field(0, ge=0, le=100)
    loan_installments: float = Field(0, ge=0)
    epf_company_share: int = 0
    epf_employee_share: int = 0
    etf_company_share: int = 0
    tax_amount: int = 0
    gross_salary: float = 0
    net_salary: float = 0
    transaction_id: Optional[str] = None


class CartItem(BaseModel):
    design_id: str
    item_name: str
    price: float
    quantity: int = Field(1, ge=1)
    available_quantity: int
    image_url: str
    designer_name: str
    designer_id: Optional[str] = None
    material: str
    board_size: str
    board_color: str
    board_thickness: str
    description: str
    added_at: datetime
