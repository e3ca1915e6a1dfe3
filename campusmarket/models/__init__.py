from campusmarket.models.base import Base  # noqa: F401

from campusmarket.models.api_key import ApiKey  # noqa: F401
from campusmarket.models.category import Category  # noqa: F401
from campusmarket.models.listing import Listing  # noqa: F401
from campusmarket.models.commission_payment import CommissionPayment  # noqa: F401
from campusmarket.models.escrow import EscrowTransaction  # noqa: F401
from campusmarket.models.audit_log import AuditLog  # noqa: F401
from campusmarket.models.outbox import OutboxEvent  # noqa: F401
from campusmarket.models.favorite import Favorite  # noqa: F401
