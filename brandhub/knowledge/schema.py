"""
Brand knowledge schema

One record per brand, entered once and shared by every agent cluster.
Four buckets partition the record:

- strategy_data: market, pricing, legal and KPI information
- creative_data: visual identity, assets and accessibility rules
- growth_data: audience, communication, platforms, calendar and automation
- cross_data: values, promise, past results, constraints and resources

All models are frozen; updates replace the whole record.
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


# Strategy bucket

class USP(_Frozen):
    primary: str
    secondary: List[str] = Field(default_factory=list)
    tagline: str = ""


class Competitor(_Frozen):
    name: str
    strengths: List[str] = Field(default_factory=list)
    weaknesses: List[str] = Field(default_factory=list)
    market_position: str = ""


class PricingStrategy(_Frozen):
    entry_price: float = Field(..., ge=0)
    premium_price: float = Field(..., ge=0)
    cost_of_goods: float = Field(..., ge=0)
    profit_margin_target: float = Field(..., description="Target profit margin in percent")
    currency: str = Field("THB", min_length=3, max_length=3)


class LegalInfo(_Frozen):
    business_name: str
    tax_id: str
    business_address: str
    phone_number: str
    email: str
    business_registration_no: str


class CurrentMetrics(_Frozen):
    monthly_revenue: Optional[float] = None
    customer_count: Optional[int] = None
    conversion_rate: Optional[float] = Field(None, ge=0, le=1)
    average_order_value: Optional[float] = None
    last_updated: datetime


class StrategyData(_Frozen):
    industry: str
    business_model: str
    usp: USP
    competitors: List[Competitor] = Field(default_factory=list)
    pricing_strategy: PricingStrategy
    legal_info: LegalInfo
    current_metrics: CurrentMetrics


# Creative bucket

class ColorPalette(_Frozen):
    primary: str
    secondary: List[str] = Field(default_factory=list)
    accent: str
    neutral_light: str
    neutral_dark: str


class Typography(_Frozen):
    primary_font: str
    secondary_font: str
    brand_font_rules: str = ""


class VisualIdentity(_Frozen):
    colors: ColorPalette
    typography: Typography
    mood_keywords: List[str] = Field(default_factory=list)
    aesthetic_style: str
    design_pattern: str = ""


class VideoStyle(_Frozen):
    format: str
    duration_preference: str
    aspect_ratio: List[str] = Field(default_factory=list)
    music_style: str = ""


class BrandAssets(_Frozen):
    logo_url: str
    logo_variations: List[str] = Field(default_factory=list)
    brand_guideline_url: Optional[str] = None
    video_style: VideoStyle
    photography_style: List[str] = Field(default_factory=list)


class Accessibility(_Frozen):
    needs_captions: bool
    needs_alt_text: bool
    color_contrast_rating: str = "Standard"  # AAA, AA, Standard


class CreativeData(_Frozen):
    visual_identity: VisualIdentity
    brand_assets: BrandAssets
    accessibility: Accessibility


# Growth bucket

class Persona(_Frozen):
    name: str
    age_range: str
    occupation: str
    lifestyle: str
    pain_points: List[str] = Field(default_factory=list)
    desires: List[str] = Field(default_factory=list)
    media_consumption: List[str] = Field(default_factory=list)


class TargetAudience(_Frozen):
    personas: List[Persona] = Field(default_factory=list)


class Communication(_Frozen):
    tone_of_voice: str
    language_level: int = Field(..., ge=1, le=5)
    forbidden_words: List[str] = Field(default_factory=list)
    encouraged_words: List[str] = Field(default_factory=list)
    signature_hashtags: List[str] = Field(default_factory=list)
    signature_phrases: List[str] = Field(default_factory=list)
    default_language: str = "th"
    supported_languages: List[str] = Field(default_factory=lambda: ["th"])


class InstagramSettings(_Frozen):
    post_frequency: str
    caption_length: str
    hashtag_count: int = Field(..., ge=0)


class TikTokSettings(_Frozen):
    content_type: List[str] = Field(default_factory=list)
    trend_participation: bool = False


class FacebookSettings(_Frozen):
    community_engagement: bool = False


class LineOASettings(_Frozen):
    broadcast_frequency: str
    allowed_content_types: List[str] = Field(default_factory=list)


class PlatformStrategy(_Frozen):
    primary_platform: str
    secondary_platforms: List[str] = Field(default_factory=list)
    instagram: InstagramSettings
    tiktok: TikTokSettings
    facebook: FacebookSettings
    line_oa: Optional[LineOASettings] = None


class YearlyCampaign(_Frozen):
    month: int = Field(..., ge=1, le=12)
    campaign_name: str
    theme: str
    budget_allocation: Optional[float] = None


class RecurringEvent(_Frozen):
    event_name: str
    frequency: str  # Daily, Weekly, Monthly
    day_of_week: Optional[int] = Field(None, ge=0, le=6)


class MarketingCalendar(_Frozen):
    yearly_campaigns: List[YearlyCampaign] = Field(default_factory=list)
    recurring_events: List[RecurringEvent] = Field(default_factory=list)


class LineOAIntegration(_Frozen):
    line_id: str
    webhook_url: Optional[str] = None


class EmailNotification(_Frozen):
    email: str
    notification_triggers: List[str] = Field(default_factory=list)


class GoogleSheets(_Frozen):
    content_log_id: str
    production_log_id: str
    analytics_sheet_id: str


class CustomWebhook(_Frozen):
    name: str
    url: str
    trigger: str


class Webhooks(_Frozen):
    make_com_webhook: Optional[str] = None
    zapier_webhook: Optional[str] = None
    custom_webhooks: List[CustomWebhook] = Field(default_factory=list)


class AutomationNeeds(_Frozen):
    line_oa: Optional[LineOAIntegration] = None
    email_notification: EmailNotification
    google_sheets: GoogleSheets
    webhooks: Webhooks


class GrowthData(_Frozen):
    target_audience: TargetAudience
    communication: Communication
    platform_strategy: PlatformStrategy
    marketing_calendar: MarketingCalendar
    automation_needs: AutomationNeeds


# Cross-cutting bucket

class PastCampaign(_Frozen):
    campaign_name: str
    result: str
    engagement_rate: float
    conversion_rate: float


class BudgetLimits(_Frozen):
    monthly_ad_spend: Optional[float] = None
    max_per_campaign: Optional[float] = None


class Constraints(_Frozen):
    must_include: List[str] = Field(default_factory=list)
    must_exclude: List[str] = Field(default_factory=list)
    budget_limits: BudgetLimits = Field(default_factory=BudgetLimits)


class Resources(_Frozen):
    brand_guidelines_url: Optional[str] = None
    competitor_analysis_url: Optional[str] = None
    market_research_data: Optional[str] = None


class CrossData(_Frozen):
    brand_values: List[str] = Field(default_factory=list)
    brand_promise: str = ""
    past_successful_campaigns: List[PastCampaign] = Field(default_factory=list)
    constraints: Constraints = Field(default_factory=Constraints)
    resources: Resources = Field(default_factory=Resources)


class BrandKnowledgeSchema(_Frozen):
    """The canonical knowledge record of one brand"""
    brand_id: str = Field(..., min_length=1, max_length=100)
    brand_name_th: str = Field(..., min_length=1)
    brand_name_en: str
    updated_at: datetime
    created_by: str

    strategy_data: StrategyData
    creative_data: CreativeData
    growth_data: GrowthData
    cross_data: CrossData
