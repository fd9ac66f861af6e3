"""
Transform Tests - 优化 Pass 测试模块
====================================

- test_qdq_fusion.py      : Conv / MatMul / Add / Mul / Concat / 一元算子融合与透明算子链
- test_qdq_edge_cases.py  : 参数不一致、多消费者、不支持类型、受保护节点、配置与回滚
"""
