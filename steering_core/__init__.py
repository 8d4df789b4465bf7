"""Steering Core 顶层包。

该包实现双模型对照控制台的后端：Provider 注册表与各厂商适配器、
中继调度（校验、调用、落库、指标）、流式分片展示、会话记录导入导出，
以及对外的 FastAPI 接口。
"""

from steering_core.api.service import SteeringService
from steering_core.relay.dispatcher import RelayDispatcher

__all__ = ["RelayDispatcher", "SteeringService"]
