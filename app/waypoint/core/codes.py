STATUS_SCHEDULED = "SCHEDULED"
STATUS_IN_PREPARATION = "IN_PREPARATION"
STATUS_IN_TRANSIT = "IN_TRANSIT"
STATUS_IN_CUSTOMS = "IN_CUSTOMS"
STATUS_QUALITY_CHECK = "QUALITY_CHECK"
STATUS_AWAITING_APPROVAL = "AWAITING_APPROVAL"
STATUS_COMPLETED = "COMPLETED"
STATUS_REJECTED = "REJECTED"

TRANSFER_STATUSES = (
    STATUS_SCHEDULED,
    STATUS_IN_PREPARATION,
    STATUS_IN_TRANSIT,
    STATUS_IN_CUSTOMS,
    STATUS_QUALITY_CHECK,
    STATUS_AWAITING_APPROVAL,
    STATUS_COMPLETED,
    STATUS_REJECTED,
)
TERMINAL_STATUSES = frozenset({STATUS_COMPLETED, STATUS_REJECTED})

TYPE_INBOUND = "INBOUND"
TYPE_OUTBOUND = "OUTBOUND"
TYPE_INTERNAL = "INTERNAL"
TRANSFER_TYPES = (TYPE_INBOUND, TYPE_OUTBOUND, TYPE_INTERNAL)

PRIORITIES = ("LOW", "MEDIUM", "HIGH")

STEP_CREATION = "CREATION"
STEP_SHIPPING = "SHIPPING"
STEP_CUSTOMS_SUBMISSION = "CUSTOMS_SUBMISSION"
STEP_CUSTOMS_CLEARANCE = "CUSTOMS_CLEARANCE"
STEP_QUALITY_CHECK = "QUALITY_CHECK"
STEP_RECEIPT = "RECEIPT"
VERIFICATION_STEPS = (
    STEP_CREATION,
    STEP_SHIPPING,
    STEP_CUSTOMS_SUBMISSION,
    STEP_CUSTOMS_CLEARANCE,
    STEP_QUALITY_CHECK,
    STEP_RECEIPT,
)

CONTRACT_ACTIVE = "ACTIVE"
CONTRACT_COMPLETED = "COMPLETED"
CONTRACT_CANCELLED = "CANCELLED"

PAYMENT_PENDING = "PENDING"
PAYMENT_COMPLETED = "COMPLETED"
PAYMENT_FAILED = "FAILED"
PAYMENT_STATUSES = (PAYMENT_PENDING, PAYMENT_COMPLETED, PAYMENT_FAILED)

PAYMENT_METHODS = ("SHELL", "USDC", "TRADITIONAL")

TRIGGER_VERIFIED_RECEIPT = "VERIFIED_RECEIPT"
TRIGGER_CUSTOMS_CLEARANCE = "CUSTOMS_CLEARANCE"
TRIGGER_QUALITY_CHECK_PASSED = "QUALITY_CHECK_PASSED"

ACTION_ADD_TRACKING = "add_tracking"
ACTION_PROCESS_RECEIPT = "process_receipt"
ACTION_VERIFY_CONTENTS = "verify_contents"
ACTION_UPDATE_ITEMS = "update_items"
ACTION_RECORD_VERIFICATION = "record_verification"
ACTION_ADVANCE = "advance"
ACTION_REJECT = "reject"
ACTION_EVALUATE_SETTLEMENT = "evaluate_settlement"
