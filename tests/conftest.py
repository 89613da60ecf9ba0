from __future__ import annotations

import os

# boto3 clients are created at import time and need a region
os.environ.setdefault("AWS_DEFAULT_REGION", "us-east-1")
os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")
os.environ.setdefault("POWERTOOLS_TRACE_DISABLED", "true")
os.environ.setdefault("POWERTOOLS_SERVICE_NAME", "roombook")
os.environ.setdefault("POWERTOOLS_METRICS_NAMESPACE", "RoomBooking")
