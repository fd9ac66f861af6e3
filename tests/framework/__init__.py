"""
Framework Tests - 核心框架测试模块
===================================

测试图模型、模式匹配、量化参数、规则表等基础组件：

模块列表：
- test_core.py            : 模式原语（嵌套匹配、consumer_count、domain/属性、Const 谓词）
- test_graph.py           : 图模型（边维护、原子删除、拓扑序、环检测、快照恢复）
- test_infrastructure.py  : PassRegistry、按级别筛选、transform() 调试导出
- test_logging.py         : 日志系统配置和级别控制
- test_matcher.py         : QDQMatcher 匹配结果与 QDQRewriter 改写
- test_quantization.py    : scale / zero point 提取与类型检查
- test_rules.py           : 融合规则表、属性映射、输入排布
- test_visualize.py       : GraphViz DOT 导出
"""
