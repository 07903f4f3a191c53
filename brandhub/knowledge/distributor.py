"""
Context distributor

Projects a full brand knowledge record into the fixed-shape view each
agent role needs. Every view is a table of (output key, dotted path) pairs
resolved against the record; nothing here performs I/O or mutates input.

Views overlap on purpose (usp appears in strategy, growth and orchestrator)
so each agent gets a self-contained context from a single call.
"""
import copy
import logging
from enum import Enum
from typing import Any, Dict, Mapping, Tuple, Union

from pydantic import BaseModel

from brandhub.core.exceptions import SchemaIncompleteError

logger = logging.getLogger(__name__)

SchemaInput = Union[BaseModel, Mapping[str, Any]]


class ContextView(str, Enum):
    STRATEGY = "strategy"
    CREATIVE = "creative"
    GROWTH = "growth"
    ORCHESTRATOR = "orchestrator"
    MINIMAL = "minimal"


# Anchor identity present in every view
_IDENTITY: Tuple[Tuple[str, str], ...] = (
    ("brand_id", "brand_id"),
    ("brand_name_th", "brand_name_th"),
)

VIEW_FIELDS: Dict[ContextView, Tuple[Tuple[str, str], ...]] = {
    ContextView.STRATEGY: _IDENTITY + (
        ("brand_name_en", "brand_name_en"),
        ("industry", "strategy_data.industry"),
        ("usp", "strategy_data.usp"),
        ("competitors", "strategy_data.competitors"),
        ("pricing", "strategy_data.pricing_strategy"),
        ("legal_info", "strategy_data.legal_info"),
        ("metrics", "strategy_data.current_metrics"),
        ("brand_values", "cross_data.brand_values"),
        ("constraints", "cross_data.constraints"),
    ),
    ContextView.CREATIVE: _IDENTITY + (
        ("visual_identity", "creative_data.visual_identity"),
        ("brand_assets", "creative_data.brand_assets"),
        ("accessibility", "creative_data.accessibility"),
        ("mood_keywords", "creative_data.visual_identity.mood_keywords"),
        ("brand_values", "cross_data.brand_values"),
    ),
    ContextView.GROWTH: _IDENTITY + (
        ("target_audience", "growth_data.target_audience"),
        ("communication", "growth_data.communication"),
        ("platform_strategy", "growth_data.platform_strategy"),
        ("marketing_calendar", "growth_data.marketing_calendar"),
        ("automation_needs", "growth_data.automation_needs"),
        ("usp", "strategy_data.usp"),
        ("visual_identity", "creative_data.visual_identity"),
        ("brand_values", "cross_data.brand_values"),
        ("constraints", "cross_data.constraints"),
    ),
    ContextView.ORCHESTRATOR: _IDENTITY + (
        ("brand_name_en", "brand_name_en"),
        ("usp", "strategy_data.usp"),
        ("mood_keywords", "creative_data.visual_identity.mood_keywords"),
        ("tone_of_voice", "growth_data.communication.tone_of_voice"),
        ("target_audience", "growth_data.target_audience"),
        ("primary_platform", "growth_data.platform_strategy.primary_platform"),
        ("automation_needs", "growth_data.automation_needs"),
    ),
    ContextView.MINIMAL: _IDENTITY + (
        ("usp", "strategy_data.usp.primary"),
        ("tone", "growth_data.communication.tone_of_voice"),
        ("mood", "creative_data.visual_identity.mood_keywords"),
    ),
}


# Agent roster by cluster; every role reads exactly one view
AGENT_CONTEXT_VIEWS: Dict[str, ContextView] = {
    # Strategy cluster
    "market-analyst": ContextView.STRATEGY,
    "business-planner": ContextView.STRATEGY,
    "insights-agent": ContextView.STRATEGY,
    "competitive-intelligence": ContextView.STRATEGY,
    "customer-research": ContextView.STRATEGY,
    "financial-modeler": ContextView.STRATEGY,
    "risk-assessor": ContextView.STRATEGY,
    "opportunity-hunter": ContextView.STRATEGY,
    "pricing-strategist": ContextView.STRATEGY,
    "market-trend-analyst": ContextView.STRATEGY,
    # Creative cluster
    "brand-builder": ContextView.CREATIVE,
    "design-agent": ContextView.CREATIVE,
    "video-generator-art": ContextView.CREATIVE,
    "ux-strategist": ContextView.CREATIVE,
    "color-science-expert": ContextView.CREATIVE,
    "typography-specialist": ContextView.CREATIVE,
    "animation-director": ContextView.CREATIVE,
    "visual-storyteller": ContextView.CREATIVE,
    "accessibility-champion": ContextView.CREATIVE,
    "design-system-architect": ContextView.CREATIVE,
    # Growth cluster
    "caption-creator": ContextView.GROWTH,
    "campaign-planner": ContextView.GROWTH,
    "video-generator-script": ContextView.GROWTH,
    "automation-specialist": ContextView.GROWTH,
    "seo-strategist": ContextView.GROWTH,
    "influencer-coordinator": ContextView.GROWTH,
    "community-manager": ContextView.GROWTH,
    "conversion-optimizer": ContextView.GROWTH,
    "analytics-strategist": ContextView.GROWTH,
    "retention-specialist": ContextView.GROWTH,
    # Routing and coordination
    "orchestrator": ContextView.ORCHESTRATOR,
}


def _as_mapping(schema: SchemaInput) -> Mapping[str, Any]:
    if isinstance(schema, BaseModel):
        return schema.model_dump(mode="json")
    return schema


def _resolve(record: Mapping[str, Any], path: str, view: ContextView) -> Any:
    """Walk a dotted path; a missing key or a null value is a schema integrity bug"""
    current: Any = record
    walked = []
    for part in path.split("."):
        walked.append(part)
        if not isinstance(current, Mapping) or part not in current or current[part] is None:
            raise SchemaIncompleteError(".".join(walked), view.value)
        current = current[part]
    return current


def build_context(schema: SchemaInput, view: Union[ContextView, str]) -> Dict[str, Any]:
    """
    Build one named view of a knowledge record.

    Accepts a validated BrandKnowledgeSchema or the raw stored mapping.
    The result is a fresh deep copy; callers may mutate it freely.

    Raises:
        SchemaIncompleteError: a referenced path is absent or null
        ValueError: unknown view name
    """
    view = ContextView(view)
    record = _as_mapping(schema)
    context = {key: _resolve(record, path, view) for key, path in VIEW_FIELDS[view]}
    return copy.deepcopy(context)


def get_strategy_context(schema: SchemaInput) -> Dict[str, Any]:
    """Market Analyst, Business Planner, Insights Agent and the rest of the strategy cluster"""
    return build_context(schema, ContextView.STRATEGY)


def get_creative_context(schema: SchemaInput) -> Dict[str, Any]:
    """Brand Builder, Design Agent, Video Generator Art and the rest of the creative cluster"""
    return build_context(schema, ContextView.CREATIVE)


def get_growth_context(schema: SchemaInput) -> Dict[str, Any]:
    """Caption Creator, Campaign Planner, Automation Specialist and the rest of the growth cluster"""
    return build_context(schema, ContextView.GROWTH)


def get_orchestrator_context(schema: SchemaInput) -> Dict[str, Any]:
    """Master context for routing and coordination"""
    return build_context(schema, ContextView.ORCHESTRATOR)


def get_minimal_context(schema: SchemaInput) -> Dict[str, Any]:
    """Flattened identity, USP, tone and mood for quick operations"""
    return build_context(schema, ContextView.MINIMAL)


def get_view_for_agent(agent_id: str) -> ContextView:
    view = AGENT_CONTEXT_VIEWS.get(agent_id)
    if view is None:
        logger.debug(f"No view registered for agent '{agent_id}', using minimal context")
        return ContextView.MINIMAL
    return view


def get_agent_context(schema: SchemaInput, agent_id: str) -> Dict[str, Any]:
    """Resolve the view an agent role is entitled to and build it"""
    return build_context(schema, get_view_for_agent(agent_id))
