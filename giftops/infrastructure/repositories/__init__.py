from .bulk_order_repository import BulkOrderRepository
from .feedback_repository import FeedbackRepository
from .invoice_repository import InvoiceRepository
from .order_repository import OrderRepository
from .product_repository import CustomizationGroupRepository, ProductRepository
from .shipping_repository import ShippingRepository
from .status_event_repository import StatusEventRepository
from .stock_request_repository import StockRequestRepository
from .task_repository import TaskRepository
from .user_repository import UserRepository

__all__ = [
    "BulkOrderRepository",
    "CustomizationGroupRepository",
    "FeedbackRepository",
    "InvoiceRepository",
    "OrderRepository",
    "ProductRepository",
    "ShippingRepository",
    "StatusEventRepository",
    "StockRequestRepository",
    "TaskRepository",
    "UserRepository",
]
