"""Pydantic schemas for the analyst-defined scoring rubric."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field


class CriterionDefinition(BaseModel):
    name: str
    description: str = ""
    scoring_guidance: str = ""
    insufficient_evidence_cap: Optional[int] = Field(
        default=None, ge=0, le=100,
        description="Score ceiling applied when evidence is unknown (default 60)",
    )


class CategoryDefinition(BaseModel):
    name: str
    weight: float = Field(..., ge=0, description="Relative category weight")
    criteria: List[CriterionDefinition] = Field(default_factory=list)


class CriteriaSchema(BaseModel):
    """Ordered categories, each with ordered criteria."""

    categories: List[CategoryDefinition] = Field(default_factory=list)

    def find_criterion(self, category_name: str, criterion_name: str) -> Optional[CriterionDefinition]:
        for category in self.categories:
            if category.name != category_name:
                continue
            for criterion in category.criteria:
                if criterion.name == criterion_name:
                    return criterion
        return None
