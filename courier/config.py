import os

DATABASE_URL = os.getenv("DATABASE_URL")

CMS_URL = os.getenv("CMS_URL", "http://localhost:8000/internal/cms")
WMS_URL = os.getenv("WMS_URL", "http://localhost:8000/internal/wms")
ROS_URL = os.getenv("ROS_URL", "http://localhost:8000/internal/ros")
HTTP_TIMEOUT = float(os.getenv("COURIER_HTTP_TIMEOUT", "5"))

API_KEY = os.getenv("COURIER_API_KEY")

IDEMPOTENCY_TTL_SECONDS = int(os.getenv("IDEMPOTENCY_TTL_SECONDS", "86400"))
IDEMPOTENCY_MAX_KEYS = int(os.getenv("IDEMPOTENCY_MAX_KEYS", "10000"))

OUTBOX_MAX_ATTEMPTS = int(os.getenv("COURIER_OUTBOX_MAX_ATTEMPTS", "5"))

RABBIT_URL = os.getenv("RABBIT_URL")
RABBIT_EXCHANGE = os.getenv("RABBIT_EXCHANGE", "courier.events")

CORS_ORIGIN_REGEX = os.getenv("CORS_ORIGIN_REGEX", r"^http://.*:5173$")
LOG_LEVEL = os.getenv("COURIER_LOG_LEVEL", "INFO")
