"""领域层模型。

包含：
- models: Message / ContentPart 等统一数据结构与可识别的配置项。
- conversation: Conversation 不可变值及其链式 mutator。
- exceptions: 异常类型定义。
- results: 异步层使用的 CallResult / TaskFailure / StreamEvent。
"""
