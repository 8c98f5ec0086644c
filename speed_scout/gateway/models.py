# speed_scout/gateway/models.py
"""
Boundary types of the analysis gateway.
"""
from __future__ import annotations

from typing import Any, Dict, Literal, Optional, Protocol, TypedDict

Device = Literal["mobile", "desktop"]
Report = Dict[str, Any]


class DeviceReports(TypedDict):
    mobile: Optional[Report]
    desktop: Optional[Report]


class AnalysisGateway(Protocol):
    """Performs PageSpeed analyses; failures raise AnalysisError."""

    async def analyze(
        self, url: str, device: Device, api_key: Optional[str] = None, *, locale: Optional[str] = None
    ) -> Report: ...

    async def analyze_both(self, url: str) -> DeviceReports: ...
