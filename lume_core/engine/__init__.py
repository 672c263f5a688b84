"""执行层：同步编排（orchestrator）与异步执行（async_runner）。"""
