"""speed_scout.gateway: clients for the PageSpeed analysis provider."""

from .models import AnalysisGateway, Device, DeviceReports, Report
from .pagespeed import DEVICES, PageSpeedGateway

__all__ = ["AnalysisGateway", "Device", "DeviceReports", "Report", "DEVICES", "PageSpeedGateway"]
