"""领域层模型与协议。

包含：
- models: Message / LedgerAccount / Provider 等数据结构。
- exceptions: 业务异常类型定义与错误分类函数。
"""
