"""
QDQ Optimizer Transforms
========================

Registered graph passes.

transforms/
└── qdq_fusion.py    # QDQFusionPass: Q/DQ + op -> QLinear* op ("qdq_fusion", level 2)
"""

from .qdq_fusion import QDQFusionPass

__all__ = ["QDQFusionPass"]
