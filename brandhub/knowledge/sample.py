"""
Art Coffee Studio example record, used for seeding and in tests
"""
from brandhub.knowledge.schema import BrandKnowledgeSchema

EXAMPLE_BRAND_RECORD = {
    "brand_id": "coffee-shop-01",
    "brand_name_th": "คาเฟ่อาร์ต",
    "brand_name_en": "Art Coffee Studio",
    "updated_at": "2025-03-01T09:00:00+00:00",
    "created_by": "owner@artcoffee.com",
    "strategy_data": {
        "industry": "Cafe & Coffee Shop",
        "business_model": "B2C + Online",
        "usp": {
            "primary": "Premium specialty coffee with artist workspace",
            "secondary": ["Local artists support", "Instagram-worthy ambiance"],
            "tagline": "Where Coffee Meets Art",
        },
        "competitors": [
            {
                "name": "StarBucks Branch 2",
                "strengths": ["Brand recognition", "Consistency"],
                "weaknesses": ["Mass-produced taste", "No local feel"],
                "market_position": "Premium chain",
            }
        ],
        "pricing_strategy": {
            "entry_price": 60,
            "premium_price": 150,
            "cost_of_goods": 20,
            "profit_margin_target": 60,
            "currency": "THB",
        },
        "legal_info": {
            "business_name": "ART COFFEE STUDIO CO., LTD.",
            "tax_id": "1234567890123",
            "business_address": "123 Sukhumvit Soi 15, Bangkok 10110, Thailand",
            "phone_number": "02-123-4567",
            "email": "info@artcoffee.com",
            "business_registration_no": "BRN123456",
        },
        "current_metrics": {
            "monthly_revenue": 500000,
            "customer_count": 2500,
            "conversion_rate": 0.15,
            "average_order_value": 120,
            "last_updated": "2025-03-01T09:00:00+00:00",
        },
    },
    "creative_data": {
        "visual_identity": {
            "colors": {
                "primary": "#8B4513",
                "secondary": ["#D2B48C", "#A0826D"],
                "accent": "#FF6B6B",
                "neutral_light": "#FFF8F0",
                "neutral_dark": "#3E3E3E",
            },
            "typography": {
                "primary_font": "Oswald",
                "secondary_font": "Spectral",
                "brand_font_rules": "BOLD CAPS for brand name, Spectral for descriptions",
            },
            "mood_keywords": ["warm", "artistic", "cozy", "creative", "sophisticated"],
            "aesthetic_style": "Artisan Minimalism",
            "design_pattern": "Grid-based with artistic elements",
        },
        "brand_assets": {
            "logo_url": "https://example.com/logo.png",
            "logo_variations": ["horizontal", "vertical", "icon-only"],
            "video_style": {
                "format": "Cinematic",
                "duration_preference": "15-30s for social, 60s+ for storytelling",
                "aspect_ratio": ["9:16", "1:1"],
                "music_style": "Ambient + Indie",
            },
            "photography_style": ["Lifestyle", "Product-focused", "Behind-the-scenes"],
        },
        "accessibility": {
            "needs_captions": True,
            "needs_alt_text": True,
            "color_contrast_rating": "AA",
        },
    },
    "growth_data": {
        "target_audience": {
            "personas": [
                {
                    "name": "Creative Professional",
                    "age_range": "25-45",
                    "occupation": "Designer, Architect, Artist",
                    "lifestyle": "Instagram-active, values aesthetics",
                    "pain_points": ["Noisy coffee chains", "Uninspired spaces"],
                    "desires": ["Inspiring workspace", "Quality coffee", "Community"],
                    "media_consumption": ["Instagram", "Facebook", "TikTok"],
                }
            ]
        },
        "communication": {
            "tone_of_voice": "เป็นกันเองแต่สุภาพ, Thoughtful, Artistic",
            "language_level": 3,
            "forbidden_words": ["cheap", "mass-produced", "corporate"],
            "encouraged_words": ["artisan", "craft", "inspire", "space", "create"],
            "signature_hashtags": ["#ArtCoffeeStudio", "#WhereArtMeetsCoffee", "#CoffeeAndArt"],
            "signature_phrases": ["Sip & Create", "Where Ideas Brew"],
            "default_language": "th",
            "supported_languages": ["th", "en"],
        },
        "platform_strategy": {
            "primary_platform": "Instagram",
            "secondary_platforms": ["TikTok", "Facebook", "LINE OA"],
            "instagram": {
                "post_frequency": "3-4x per week",
                "caption_length": "Medium (100-150 chars)",
                "hashtag_count": 8,
            },
            "tiktok": {
                "content_type": ["Behind-the-scenes", "Customer moments", "Art features"],
                "trend_participation": True,
            },
            "facebook": {"community_engagement": True},
            "line_oa": {
                "broadcast_frequency": "2x per week",
                "allowed_content_types": ["Promotions", "Events", "New menus"],
            },
        },
        "marketing_calendar": {
            "yearly_campaigns": [
                {
                    "month": 4,
                    "campaign_name": "Songkran Celebration",
                    "theme": "Traditional meets Modern",
                    "budget_allocation": 50000,
                }
            ],
            "recurring_events": [
                {"event_name": "Artist Showcase Friday", "frequency": "Weekly", "day_of_week": 5}
            ],
        },
        "automation_needs": {
            "line_oa": {"line_id": "@artcoffee", "webhook_url": "https://example.com/line/webhook"},
            "email_notification": {
                "email": "owner@artcoffee.com",
                "notification_triggers": ["New order", "Customer feedback", "Event signup"],
            },
            "google_sheets": {
                "content_log_id": "SHEET_ID_1",
                "production_log_id": "SHEET_ID_2",
                "analytics_sheet_id": "SHEET_ID_3",
            },
            "webhooks": {
                "make_com_webhook": "https://hook.make.com/example",
                "custom_webhooks": [
                    {"name": "Order Notification", "url": "https://example.com/order", "trigger": "on_new_order"}
                ],
            },
        },
    },
    "cross_data": {
        "brand_values": ["Creativity", "Quality", "Community", "Sustainability"],
        "brand_promise": "Create your best work in an inspiring space with exceptional coffee",
        "past_successful_campaigns": [
            {
                "campaign_name": "Artist Spotlight March 2025",
                "result": "2,500 impressions, 150 new customers",
                "engagement_rate": 0.12,
                "conversion_rate": 0.06,
            }
        ],
        "constraints": {
            "must_include": ["Our USP", "Location info"],
            "must_exclude": ["Competitor names"],
            "budget_limits": {"monthly_ad_spend": 30000, "max_per_campaign": 10000},
        },
        "resources": {
            "brand_guidelines_url": "https://example.com/guidelines.pdf",
            "competitor_analysis_url": "https://example.com/analysis",
        },
    },
}

EXAMPLE_BRAND_SCHEMA = BrandKnowledgeSchema.model_validate(EXAMPLE_BRAND_RECORD)
