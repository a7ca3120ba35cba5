from .cart import (
    CartDetail,
    CartItemCreate,
    CartItemQuantityUpdate,
    CartItemResponse,
    CartResponse,
)
from .discount import (
    DiscountApplyRequest,
    DiscountApplyResponse,
    DiscountCreate,
    DiscountResponse,
)
from .flash_sale import (
    FlashSaleCampaignCreate,
    FlashSaleCampaignResponse,
    FlashSaleItemCreate,
    FlashSaleItemResponse,
)
from .order import (
    OrderCreate,
    OrderResponse,
    OrderStatusUpdate,
)
from .scheduled_job import (
    ScheduledJobCreate,
    ScheduledJobResponse,
    ScheduledJobUpdate,
)
