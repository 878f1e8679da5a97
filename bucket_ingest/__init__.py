"""S3 object ingestion pipeline and bucket notification routing."""

from .config import AppConfig
from .notifications import NotificationRouterConfigurator
from .pipeline import BatchIngestionPipeline

__all__ = ["AppConfig", "BatchIngestionPipeline", "NotificationRouterConfigurator"]
