"""
Brand knowledge record and the per-role context views built from it
"""
from brandhub.knowledge.schema import BrandKnowledgeSchema
from brandhub.knowledge.distributor import (
    AGENT_CONTEXT_VIEWS,
    ContextView,
    build_context,
    get_agent_context,
    get_creative_context,
    get_growth_context,
    get_minimal_context,
    get_orchestrator_context,
    get_strategy_context,
)

__all__ = [
    "AGENT_CONTEXT_VIEWS",
    "BrandKnowledgeSchema",
    "ContextView",
    "build_context",
    "get_agent_context",
    "get_creative_context",
    "get_growth_context",
    "get_minimal_context",
    "get_orchestrator_context",
    "get_strategy_context",
]
