# gst_pos/constants.py
APP_NAME = "GST POS"
ORG_NAME = "GST POS"

DB_FILE_NAME = "pos.db"
ENV_DB_PATH = "POS_DB_PATH"

LOG_DIR = "logs"
DB_EVENTS_LOG_FILE = "pos_db.log"

INVOICE_PREFIX = "INV"
INVOICE_SERIAL_WIDTH = 4

DEFAULT_PAGE_SIZE = 10
TOP_PRODUCTS_LIMIT = 5
RECENT_INVOICES_LIMIT = 10

DEFAULT_PAYMENT_METHOD = "Cash"

# tables the path resolver scores when two database files compete
CORE_TABLES = ("products", "sales")

SNAPSHOT_SUFFIX = ".db"
DUMP_FILE_PREFIX = "pos-dump"
