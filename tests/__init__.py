"""
QDQ Optimizer Test Suite
========================

测试模块组织：

tests/
├── framework/           # 核心框架测试
│   ├── test_core.py              # 模式原语（Op / Any / Const）
│   ├── test_graph.py             # 图模型与变更原语
│   ├── test_infrastructure.py    # PassRegistry 与调试输出
│   ├── test_logging.py           # 日志系统测试
│   ├── test_matcher.py           # 匹配器与改写器
│   ├── test_quantization.py      # 量化参数提取
│   ├── test_rules.py             # 融合规则表
│   └── test_visualize.py         # DOT 导出
│
├── transforms/          # 优化 Pass 测试
│   ├── test_qdq_fusion.py        # QDQ 融合场景
│   └── test_qdq_edge_cases.py    # 不融合条件、配置、回滚
│
└── test_consistency.py  # 复合图一致性

运行测试：
    # 使用 pytest 运行全部
    python -m pytest tests/ -v

    # 运行特定模块
    python -m pytest tests/framework/ -v
    python -m pytest tests/transforms/ -v
"""
