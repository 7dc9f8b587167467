"""
Execution plan models.

The JSON shape is what the model is asked to produce::

    {"steps": [{"title": "...", "description": "...",
                "services": [{"serviceName": "orders", "operations": ["getOrder"]}]}]}
"""

from __future__ import annotations

from typing import List

from pydantic import BaseModel, Field


class PlanService(BaseModel):
    serviceName: str
    operations: List[str] = Field(default_factory=list)


class PlanStep(BaseModel):
    title: str
    description: str = ""
    services: List[PlanService] = Field(default_factory=list)


class ExecutionPlan(BaseModel):
    steps: List[PlanStep]

    def referenced_operations(self) -> List[str]:
        """Every operation id named anywhere in the plan, first occurrence order."""
        seen: dict[str, None] = {}
        for step in self.steps:
            for service in step.services:
                for operation in service.operations:
                    seen.setdefault(operation, None)
        return list(seen)
