from prometheus_client import Counter

ORDERS_SUBMITTED = Counter(
    "orders_submitted_total",
    "Order submissions from customer sessions",
    ["outcome"],  # created | rejected | failed | busy
)

ORDER_ACTIONS = Counter(
    "order_actions_total",
    "Customer-initiated order actions",
    ["action", "outcome"],  # cancel/payment x applied | rejected | failed
)

NOTIFICATIONS = Counter(
    "order_notifications_total",
    "Status notifications emitted to customers",
    ["status"],  # accepted | ready | cancelled
)

TABLE_REBIND_UPDATES = Counter(
    "table_rebind_updates_total",
    "Pending-order updates issued by table rebinds",
    ["outcome"],  # updated | failed
)

SNAPSHOTS = Counter(
    "order_snapshots_total",
    "Order feed snapshots applied to sessions",
)

SESSIONS_EVICTED = Counter(
    "customer_sessions_evicted_total",
    "Customer sessions closed by the registry",
    ["reason"],  # idle | capacity
)
