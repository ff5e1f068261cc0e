"""
Relationship Models
===================
Edges of the material relationship graph and the projections built from them.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from hypatia.models.material import SubEntityKind

# Relation kinds
CONTAINS = "contains"
RELATED = "related"
LEARNING_PATH = "LearningPath"
PREREQUISITE = "prerequisite"
ASSIGNED = "assigned"

# Source kinds that are not sub-entities
MATERIAL_SOURCE = "Material"
LEARNING_PATH_SOURCE = "LearningPath"
TRAINING_PROGRAM_SOURCE = "TrainingProgram"

SUB_ENTITY_SOURCES = frozenset(kind.value for kind in SubEntityKind)


class RelationshipEdge(BaseModel):
    """A directed, typed, ordered link from a source to a target material."""
    source_id: int
    source_kind: str = Field(MATERIAL_SOURCE, description="'Material' or a sub-entity kind name")
    target_id: int
    relation_kind: str = CONTAINS
    display_order: Optional[int] = None
    created_at: Optional[datetime] = None


class RelatedMaterialSummary(BaseModel):
    id: int
    name: str = ""
    description: Optional[str] = None
    variant: Optional[str] = None
    display_order: Optional[int] = None


class ReconcileResult(BaseModel):
    """Outcome of converging a source's edge set to a desired id list."""
    source_id: int
    source_kind: str
    relation_kind: str
    added: List[int] = Field(default_factory=list)
    removed: List[int] = Field(default_factory=list)
    unchanged: List[int] = Field(default_factory=list)
    failed: Dict[int, str] = Field(default_factory=dict, description="Target id -> reason")
    edges: List[RelationshipEdge] = Field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.added or self.removed)


class HierarchyNode(BaseModel):
    material: Dict[str, Any]
    relation_kind: str = CONTAINS
    display_order: Optional[int] = None
    depth: int = 1
    children: List["HierarchyNode"] = Field(default_factory=list)


class MaterialHierarchy(BaseModel):
    root_material: Dict[str, Any]
    children: List[HierarchyNode] = Field(default_factory=list)
    total_depth: int = 0
    total_materials: int = 1
    truncated: bool = False


HierarchyNode.model_rebuild()
