"""Visitor reconstruction and session aggregation engine."""

from visitor_insights_mcp.engine.aggregator import SessionAggregator
from visitor_insights_mcp.engine.detail import VisitorDetailExpander
from visitor_insights_mcp.engine.fallback import ChainResult, FallbackChain, QueryVariant
from visitor_insights_mcp.engine.identity import (
    IdentityKey,
    StableIdentity,
    decode_identity_key,
    encode_identity_key,
    stable_key,
)
from visitor_insights_mcp.engine.overview import SessionOverviewBuilder
from visitor_insights_mcp.engine.power_users import PowerUserClassifier
from visitor_insights_mcp.engine.reconciler import LandingPageReconciler
from visitor_insights_mcp.engine.service import VisitorAnalyticsEngine

__all__ = [
    "ChainResult",
    "FallbackChain",
    "IdentityKey",
    "LandingPageReconciler",
    "PowerUserClassifier",
    "QueryVariant",
    "SessionAggregator",
    "SessionOverviewBuilder",
    "StableIdentity",
    "VisitorAnalyticsEngine",
    "VisitorDetailExpander",
    "decode_identity_key",
    "encode_identity_key",
    "stable_key",
]
