"""
Constants shared across the cloudfailover package.
"""

from __future__ import annotations

NAME = "cloudfailover"
VERSION = "1.0.0"

# Environments a declaration may name
SUPPORTED_ENVIRONMENTS = ("aws",)

# Durable storage
STORAGE_FOLDER_NAME = "f5cloudfailover"
STATE_FILE_NAME = "f5cloudfailoverstate.json"
DECLARATION_FILE = "/var/lib/cloudfailover/declaration.yaml"

# Cloud tag names
NIC_TAG = "f5_cloud_failover_nic_map"
VIPS_TAGS = ("f5_cloud_failover_vips", "VIPS")
NAME_TAG = "Name"

# Fixed messages
FAILOVER_COMPLETE_MESSAGE = "Failover Complete"
STATE_FILE_RESET_MESSAGE = "Failover state file was reset"
RECOVERY_OPERATIONS_EMPTY_MESSAGE = (
    "Recovery operations are empty, advise reset via the API"
)
NO_ACTIVE_TRAFFIC_GROUPS_MESSAGE = "No active traffic groups, nothing to do"
FAILOVER_TRIGGERED_MESSAGE = "Failover triggered"

# Wait-for-prior-task polling
TASK_POLL_INTERVAL = 3.0  # seconds
TASK_POLL_MAX_ATTEMPTS = 400
MAX_RUNNING_TASK_SECONDS = 10 * 60

# Cloud API retry policy
MAX_RETRIES = 50
RETRY_INTERVAL = 5.0  # seconds

# Telemetry
TELEMETRY_RESULT_SUCCEEDED = "SUCCEEDED"
TELEMETRY_RESULT_FAILED = "FAILED"
TELEMETRY_SUMMARY_SUCCEEDED = "Failover Successful"
TELEMETRY_SUMMARY_FAILED = "Failover Unsuccessful"

# Wildcard addresses reported by the device
WILDCARD_ADDRESSES = {"any": "0.0.0.0/0", "any6": "::/0"}

ROUTE_ADDRESSES_ALL = "all"
