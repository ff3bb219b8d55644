"""Per-kind resource collectors."""

from .base import BaseResourceCollector, ScanContext
from .dynamodb_collector import DynamoDBCollector
from .eks_collector import EKSCollector
from .elb_collector import ELBCollector
from .kube_collector import KubeServiceCollector
from .network_collector import NetworkCollector
from .s3_collector import S3Collector

# Collection order matters: later collectors use what earlier ones found
DEFAULT_COLLECTORS = [
    NetworkCollector,
    EKSCollector,
    ELBCollector,
    KubeServiceCollector,
    S3Collector,
    DynamoDBCollector,
]

__all__ = [
    "BaseResourceCollector",
    "DEFAULT_COLLECTORS",
    "DynamoDBCollector",
    "EKSCollector",
    "ELBCollector",
    "KubeServiceCollector",
    "NetworkCollector",
    "S3Collector",
    "ScanContext",
]
