import enum


class MovementKind(str, enum.Enum):
    sale = "SALE"
    order_edit = "ORDER_EDIT"
    order_delete_restore = "ORDER_DELETE_RESTORE"
    drift_adjustment = "DRIFT_ADJUSTMENT"


class OrderStatus(str, enum.Enum):
    pending_request = "PENDING_REQUEST"
    accepted = "ACCEPTED"
    fulfilled = "FULFILLED"


class DebtKind(str, enum.Enum):
    order = "ORDER"


class LedgerAction(str, enum.Enum):
    create = "CREATE"
    update = "UPDATE"
    payment = "PAYMENT"
