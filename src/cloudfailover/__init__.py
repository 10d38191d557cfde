"""
cloudfailover - failover of cloud addresses and routes for active/standby appliances
"""

from cloudfailover.constants import VERSION

__version__ = VERSION
