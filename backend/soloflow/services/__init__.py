from soloflow.services.audit import AuditService
from soloflow.services.auth import AuthService
from soloflow.services.billing import BillingService, ManualGateway
from soloflow.services.maintenance import run_subscription_maintenance
from soloflow.services.razorpay import PaymentGatewayError, RazorpayGateway
from soloflow.services.subscription import SubscriptionService
from soloflow.services.subscription_admin import SubscriptionAdminService
from soloflow.services.subscription_context import CheckoutPoller, SubscriptionContext
from soloflow.services.user_notifications import UserNotificationService

__all__ = [
    "AuditService",
    "AuthService",
    "BillingService",
    "ManualGateway",
    "run_subscription_maintenance",
    "PaymentGatewayError",
    "RazorpayGateway",
    "SubscriptionService",
    "SubscriptionAdminService",
    "CheckoutPoller",
    "SubscriptionContext",
    "UserNotificationService",
]
