"""Core — models, access policy, pagination, interfaces and services."""

__all__: list[str] = []
