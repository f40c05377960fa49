"""
Pricing Kernel - FTZ Material Pricing Adjustment Engine

Derives material price adjustments from monthly commodity index data and
commits them to the parts catalog with:
- A deterministic three-month pricing timeline
- Server-side re-derivation of every average price
- Preview of the per-part cost impact
- All-or-nothing, idempotent application with per-part history
"""

__version__ = "0.1.0"
