"""Pricing services: DI container and JSON-ready API facade."""

from pricing_services.pricing_api import MaterialPricingAPI
from pricing_services.pricing_orchestrator import PricingOrchestrator

__all__ = ["MaterialPricingAPI", "PricingOrchestrator"]
