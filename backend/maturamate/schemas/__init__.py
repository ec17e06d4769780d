from maturamate.schemas.checkout import (
    ActivatedPlan,
    BillingPortalResponse,
    CheckoutRequest,
    CheckoutResponse,
    ProcessCheckoutRequest,
    ProcessCheckoutResponse,
    WebhookAck,
)
from maturamate.schemas.pending_change import (
    ModifyPendingChangeRequest,
    ModifyPendingChangeResponse,
    PendingChangeResponse,
    PendingChangesResponse,
    UndoPendingChangeRequest,
    UndoPendingChangeResponse,
)
from maturamate.schemas.plan_change import (
    PlanChangePreviewRequest,
    PlanChangePreviewResponse,
    PlanChangeRequest,
    PlanChangeResponse,
    PlanChangeType,
)
from maturamate.schemas.subject import SubjectDetailResponse, SubjectResponse
from maturamate.schemas.subscription import (
    CancelSubscriptionResponse,
    ReactivateSubscriptionResponse,
    SubjectSelectionValidation,
    SubscriptionMetricsResponse,
    SubscriptionStatusResponse,
    UserSubjectAccessResponse,
)

__all__ = [
    "ActivatedPlan",
    "BillingPortalResponse",
    "CancelSubscriptionResponse",
    "CheckoutRequest",
    "CheckoutResponse",
    "ModifyPendingChangeRequest",
    "ModifyPendingChangeResponse",
    "PendingChangeResponse",
    "PendingChangesResponse",
    "PlanChangePreviewRequest",
    "PlanChangePreviewResponse",
    "PlanChangeRequest",
    "PlanChangeResponse",
    "PlanChangeType",
    "ProcessCheckoutRequest",
    "ProcessCheckoutResponse",
    "ReactivateSubscriptionResponse",
    "SubjectDetailResponse",
    "SubjectResponse",
    "SubjectSelectionValidation",
    "SubscriptionMetricsResponse",
    "SubscriptionStatusResponse",
    "UndoPendingChangeRequest",
    "UndoPendingChangeResponse",
    "UserSubjectAccessResponse",
    "WebhookAck",
]
