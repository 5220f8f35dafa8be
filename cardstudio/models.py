"""Records exchanged with collaborators and persisted between runs."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from cardstudio.errors import ValidationError

TIME_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")
HEX_COLOR_RE = re.compile(r"^#[0-9a-fA-F]{6}$")

M = TypeVar("M", bound=BaseModel)


class Template(str, Enum):
    MODERN = "modern"
    ELEGANT = "elegant"
    BOLD = "bold"
    MINIMAL = "minimal"
    VIBRANT = "vibrant"


class OutputFormat(str, Enum):
    PNG = "png"
    JPEG = "jpeg"


class GenerationMode(str, Enum):
    MANUAL = "manual"
    QUICK = "quick"
    AUTOMATED = "automated"


class Frequency(str, Enum):
    ONCE = "once"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class ScheduleStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"


class ExecutionStatus(str, Enum):
    COMPLETED = "completed"
    ERROR = "error"


class SearchType(str, Enum):
    BEST_SELLERS = "best_sellers"
    BIGGEST_DISCOUNTS = "biggest_discounts"
    BEST_RATED = "best_rated"
    BEST_PRICE = "best_price"


class Product(BaseModel):
    """Affiliate product as returned by the product source.

    Accepts both snake_case field names and the affiliate API's camelCase ones.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(alias="itemId")
    name: str = Field(alias="productName", min_length=1)
    price: Decimal = Field(ge=0)
    original_price: Decimal | None = Field(default=None, alias="priceBeforeDiscount", ge=0)
    discount_rate: float | None = Field(default=None, alias="priceDiscountRate", ge=0, le=100)
    sales: int = Field(default=0, ge=0)
    rating: float | None = Field(default=None, alias="ratingStar", ge=0, le=5)
    shop_name: str | None = Field(default=None, alias="shopName")
    free_shipping: bool | None = Field(default=None, alias="freeShipping")
    shipping_info: str | None = Field(default=None, alias="shippingInfo")
    image_url: str = Field(alias="imageUrl")
    offer_link: str | None = Field(default=None, alias="offerLink")

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        if isinstance(value, int):
            return str(value)
        return value


@dataclass(slots=True, frozen=True)
class StyleOptions:
    width: int = 1080
    height: int = 1920
    template: Template = Template.MODERN
    dark_mode: bool = True
    accent_color: str | None = None
    show_rating: bool = True
    show_sales: bool = True
    show_shipping: bool = True
    show_discount: bool = True

    def __post_init__(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise ValidationError(f"Canvas size must be positive, got {self.width}x{self.height}")
        if self.accent_color and not HEX_COLOR_RE.match(self.accent_color):
            raise ValidationError(f"Invalid accent colour {self.accent_color!r}")


class CardGenerationConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    template: Template = Template.MODERN
    dark_mode: bool = True
    accent_color: str | None = None
    show_badges: bool = True
    use_ai: bool = True
    custom_description: str = ""
    include_emojis: bool = True
    include_hashtags: bool = True
    highlight_discount: bool = True
    highlight_urgency: bool = True
    include_second_variation: bool = True
    output_formats: tuple[OutputFormat, ...] = Field(
        default=(OutputFormat.PNG, OutputFormat.JPEG), min_length=1
    )
    mode: GenerationMode = GenerationMode.MANUAL
    schedule_id: str | None = None
    created_at: datetime | None = None

    @field_validator("accent_color")
    @classmethod
    def _check_accent(cls, value: str | None) -> str | None:
        if value and not HEX_COLOR_RE.match(value):
            raise ValueError("accent_color must look like #RRGGBB")
        return value or None

    @field_validator("output_formats")
    @classmethod
    def _dedupe_formats(cls, value: tuple[OutputFormat, ...]) -> tuple[OutputFormat, ...]:
        return tuple(dict.fromkeys(value))

    def style_options(self, template: Template | None = None) -> StyleOptions:
        return StyleOptions(
            template=template or self.template,
            dark_mode=self.dark_mode,
            accent_color=self.accent_color,
            show_rating=self.show_badges,
            show_sales=self.show_badges,
            show_shipping=self.show_badges,
            show_discount=self.show_badges and self.highlight_discount,
        )


class GenerationMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    generation_time_ms: int
    mode: GenerationMode
    template: Template
    secondary_template: Template | None = None


class CardGenerationResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool
    card_urls: dict[OutputFormat, str] = Field(default_factory=dict)
    secondary_card_urls: dict[OutputFormat, str] | None = None
    description: str | None = None
    product: Product | None = None
    metadata: GenerationMetadata
    error: str | None = None


class GenerationHistoryEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    product_id: str
    product_name: str
    timestamp: datetime
    mode: GenerationMode
    template: Template
    card_urls: dict[OutputFormat, str] = Field(default_factory=dict)
    schedule_id: str | None = None


class SearchCriteria(BaseModel):
    model_config = ConfigDict(frozen=True)

    search_type: SearchType = SearchType.BEST_SELLERS
    limit: int = Field(default=5, ge=1, le=50)


class Schedule(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    enabled: bool = True
    frequency: Frequency = Frequency.DAILY
    time: str = "09:00"
    weekdays: tuple[int, ...] = (1, 3, 5)
    day_of_month: int = Field(default=1, ge=1, le=31)
    criteria: SearchCriteria = Field(default_factory=SearchCriteria)
    config: CardGenerationConfig = Field(default_factory=CardGenerationConfig)
    status: ScheduleStatus = ScheduleStatus.PENDING
    last_run: datetime | None = None
    next_run: datetime | None = None
    run_started_at: datetime | None = None
    last_error: str | None = None
    notify_email: EmailStr | None = None
    created_at: datetime | None = None

    @field_validator("time")
    @classmethod
    def _check_time(cls, value: str) -> str:
        if not TIME_RE.match(value):
            raise ValueError(f"time must be HH:MM, got {value!r}")
        return value

    @field_validator("weekdays")
    @classmethod
    def _normalize_weekdays(cls, value: tuple[int, ...]) -> tuple[int, ...]:
        for day in value:
            if not 0 <= day <= 6:
                raise ValueError(f"weekday {day} outside 0 (Sunday) .. 6 (Saturday)")
        return tuple(sorted(set(value)))

    @model_validator(mode="after")
    def _weekly_needs_weekday(self) -> "Schedule":
        if self.frequency is Frequency.WEEKLY and not self.weekdays:
            raise ValueError("weekly schedules need at least one weekday")
        return self

    @property
    def hour_minute(self) -> tuple[int, int]:
        hour, minute = self.time.split(":")
        return int(hour), int(minute)


class ProductOutcome(BaseModel):
    model_config = ConfigDict(frozen=True)

    product_id: str | None = None
    product_name: str | None = None
    success: bool
    card_urls: dict[OutputFormat, str] = Field(default_factory=dict)
    error: str | None = None


class ScheduleExecution(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    schedule_id: str
    schedule_name: str
    started_at: datetime
    duration_seconds: float = 0.0
    status: ExecutionStatus
    product_count: int = 0
    success_count: int = 0
    results: tuple[ProductOutcome, ...] = ()
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.status is ExecutionStatus.COMPLETED


def validate_record(model: type[M], data: Any) -> M:
    """Validate ``data`` into ``model``, raising the package's ValidationError."""
    try:
        return model.model_validate(data)
    except PydanticValidationError as exc:
        raise ValidationError(f"Invalid {model.__name__}: {exc}") from exc
