"""
Funnel Analytics

Session reconstruction and multi-dimension funnel drilldown over
multi-step marketing funnel events.
"""

__version__ = "1.0.0"
