"""
AWS provider: Elastic IP, NIC address and route failover backed by S3 state.
"""

from .client import EC2Client, InstanceMetadataClient, S3Client
from .cloud import AWSCloud

__all__ = [
    "AWSCloud",
    "EC2Client",
    "InstanceMetadataClient",
    "S3Client",
]
