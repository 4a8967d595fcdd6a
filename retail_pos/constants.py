DATA_DIR = "data"
DB_FILE_NAME = "retail_pos.db"

TABLE_SCHEMA_VERSION = "schema_version"
SCHEMA_VERSION = "1.0.0"

LOG_DIR = "logs"
CHECKOUT_LOG_FILE = "checkout.log"

# ---- settings keys (settings table) ----
SETTING_POINT_RULE_ENABLED = "pointRule.enabled"
SETTING_POINT_RULE_BASE_AMOUNT = "pointRule.baseAmount"
SETTING_POINT_RULE_MULTIPLIER = "pointRule.pointMultiplier"

# 1 point per 1000 spent, no global boost
DEFAULT_POINT_RULE = {
    "enabled": True,
    "base_amount": 1000,
    "point_multiplier": 1,
}

PAYMENT_METHOD_CASH = "cash"

# Query service
DEFAULT_PAGE_SIZE = 10
TOP_PRODUCTS_LIMIT = 5
