"""
Data Generation Module
"""
from .generators import FunnelSessionGenerator, GeneratorConfig

__all__ = ["FunnelSessionGenerator", "GeneratorConfig"]
