from __future__ import annotations


def sample(instrumentation, name: str, **labels: str):
    """读取某个时间序列的当前值；不存在时返回 None。"""
    return instrumentation.registry.registry.get_sample_value(name, labels)


def route_labels(route: str, method: str = "GET", status: str = "2xx", **extra: str):
    return {"route": route, "method": method, "status": status, **extra}
