"""Pydantic models for the YAML configuration file."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, model_validator

from exambot.constants import Intervals, Timeouts, Urls


class ExamApiConfig(BaseModel):
    """Exam finder API polling configuration."""

    api_url: str = Field(default=Urls.EXAM_API_DEFAULT)
    capture_page_url: str = Field(default=Urls.EXAM_FINDER_PAGE)
    capture_url_keyword: str = Field(default=Urls.EXAM_API_KEYWORD)
    request_timeout: float = Field(default=Timeouts.EXAM_API_REQUEST_SECONDS, gt=0)
    capture_timeout: float = Field(default=Timeouts.API_URL_CAPTURE_SECONDS, gt=0)
    capture_retries: int = Field(default=30, ge=1)
    capture_retry_delay: float = Field(default=5.0, ge=0)
    max_consecutive_errors: int = Field(default=5, ge=1)
    recapture_retries: int = Field(default=5, ge=1)
    recapture_retry_delay: float = Field(default=3.0, ge=0)
    verify_ssl: bool = Field(default=False)


class MonitoringConfig(BaseModel):
    """Monitoring session configuration."""

    poll_interval: float = Field(default=Intervals.POLL_MONITORING, gt=0)
    max_duration: int = Field(default=5 * 60 * 60, ge=60, description="Seconds")


class BrowserPoolConfig(BaseModel):
    """Prewarmed browser pool configuration."""

    size: int = Field(default=20, ge=1, le=99)
    first_display: int = Field(default=1, ge=0)
    headless: bool = Field(default=False)
    executable_path: Optional[str] = Field(default="/usr/bin/chromium-browser")
    xauthority: str = Field(default="/tmp/.docker.xauth")
    default_timeout: int = Field(default=Timeouts.BROWSER_DEFAULT, ge=1000, description="ms")
    blocked_resource_types: List[str] = Field(default_factory=lambda: ["image", "media", "font"])
    warmup_url: str = Field(default=Urls.HOME)
    warmup_timeout: int = Field(default=Timeouts.WARMUP_NAVIGATION, ge=1000, description="ms")
    novnc_base_port: int = Field(default=6080, ge=1)
    vnc_base_port: int = Field(default=5900, ge=1)


class BookingConfig(BaseModel):
    """Booking flow configuration."""

    booking_url_template: str = Field(default=Urls.BOOKING_TEMPLATE)
    slow_page_timeout: int = Field(default=Timeouts.SLOW_PAGE, ge=1000, description="ms")
    manual_intervention_wait: int = Field(default=30 * 60, ge=0, description="Seconds")
    browser_cleanup_delay: int = Field(default=35 * 60, ge=0, description="Seconds")

    @model_validator(mode="after")
    def validate_template(self) -> "BookingConfig":
        if "{oid}" not in self.booking_url_template:
            raise ValueError("booking_url_template must contain an {oid} placeholder")
        return self


class SchedulerConfig(BaseModel):
    """Schedule watcher configuration."""

    check_interval: int = Field(default=Intervals.SCHEDULER_CHECK, ge=1)
    lead_window: int = Field(default=2 * 60, ge=1, description="Seconds before run_at")
    session_expiry: int = Field(default=30 * 60, ge=60, description="Seconds after run_at")
    retry_cooldown_minutes: int = Field(default=2, ge=0)


class ProxiesConfig(BaseModel):
    """Proxy slot configuration."""

    max_slots: int = Field(default=20, ge=1)
    proxy_file: Optional[str] = Field(default=None)


class AppConfig(BaseModel):
    """Complete application configuration."""

    exam_api: ExamApiConfig = Field(default_factory=ExamApiConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)
    browser_pool: BrowserPoolConfig = Field(default_factory=BrowserPoolConfig)
    booking: BookingConfig = Field(default_factory=BookingConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    proxies: ProxiesConfig = Field(default_factory=ProxiesConfig)

    model_config = {"extra": "allow"}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AppConfig":
        """Create from a raw configuration dictionary."""
        return cls.model_validate(data or {})
