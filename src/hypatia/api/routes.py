"""
Hypatia Material Ingestion System - API Routes
==============================================
HTTP surface for material ingestion and the relationship graph.
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, Query, Request, status
from pydantic import BaseModel, Field

from hypatia.core.coercion import parse_related_ids
from hypatia.models.material import CreateMaterialResponse
from hypatia.models.relationship import (
    CONTAINS, MaterialHierarchy, ReconcileResult, RelatedMaterialSummary, RelationshipEdge,
    MATERIAL_SOURCE,
)
from hypatia.services.material_service import MaterialService
from hypatia.services.relationship_service import RelationshipService
from hypatia.utils.logging_utils import get_logger

logger = get_logger(__name__)

router = APIRouter()


async def get_material_service(request: Request) -> MaterialService:
    """Dependency to get the material service from app state."""
    return request.app.state.material_service


async def get_relationship_service(request: Request) -> RelationshipService:
    """Dependency to get the relationship service from app state."""
    return request.app.state.material_service.relationships


class MaterialWithAssetRequest(BaseModel):
    material: Dict[str, Any]
    asset: Dict[str, Any]


class RelatedUpdateRequest(BaseModel):
    related: List[Any] = Field(default_factory=list, description="Ids, numeric strings or {id} objects")
    relation_kind: str = CONTAINS


class ReorderRequest(BaseModel):
    orders: Dict[int, int] = Field(..., description="Target material id -> display order")


# Materials

@router.post("/materials", status_code=status.HTTP_201_CREATED, response_model=CreateMaterialResponse,
             tags=["materials"], summary="Create a material from a loosely typed payload")
async def create_material(
    payload: Dict[str, Any] = Body(...),
    service: MaterialService = Depends(get_material_service)
) -> CreateMaterialResponse:
    return await service.create_material(payload)


@router.post("/materials/with-asset", status_code=status.HTTP_201_CREATED, response_model=CreateMaterialResponse,
             tags=["materials"], summary="Create an asset and a material referencing it")
async def create_material_with_asset(
    request_data: MaterialWithAssetRequest,
    service: MaterialService = Depends(get_material_service)
) -> CreateMaterialResponse:
    return await service.create_material_with_asset(request_data.material, request_data.asset)


@router.get("/materials", tags=["materials"])
async def list_materials(
    variant: Optional[str] = Query(None, description="Filter by variant, e.g. Quiz"),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    service: MaterialService = Depends(get_material_service)
) -> Dict[str, Any]:
    materials = await service.list_materials(variant=variant, limit=limit, offset=offset)
    return {"materials": materials, "count": len(materials)}


@router.get("/materials/{material_id}", tags=["materials"])
async def get_material(material_id: int, service: MaterialService = Depends(get_material_service)) -> Dict[str, Any]:
    return await service.get_material(material_id)


@router.get("/materials/{material_id}/detail", tags=["materials"])
async def get_material_detail(material_id: int,
                              service: MaterialService = Depends(get_material_service)) -> Dict[str, Any]:
    return await service.get_material_detail(material_id)


@router.put("/materials/{material_id}", tags=["materials"])
async def update_material(
    material_id: int,
    payload: Dict[str, Any] = Body(...),
    service: MaterialService = Depends(get_material_service)
) -> Dict[str, Any]:
    return await service.update_material(material_id, payload)


@router.delete("/materials/{material_id}", tags=["materials"])
async def delete_material(material_id: int, service: MaterialService = Depends(get_material_service)) -> Dict[str, Any]:
    await service.delete_material(material_id)
    return {"status": "success", "message": f"Material {material_id} deleted"}


@router.get("/materials/{material_id}/hierarchy", response_model=MaterialHierarchy, tags=["relationships"])
async def get_hierarchy(
    material_id: int,
    max_depth: Optional[int] = Query(None, description="Deepest level to expand"),
    service: MaterialService = Depends(get_material_service)
) -> MaterialHierarchy:
    return await service.get_hierarchy(material_id, max_depth)


@router.put("/materials/{material_id}/related", response_model=ReconcileResult, tags=["relationships"])
async def reconcile_related(
    material_id: int,
    request_data: RelatedUpdateRequest,
    service: MaterialService = Depends(get_material_service)
) -> ReconcileResult:
    """Converge the material's edges to exactly the supplied list."""
    await service.get_material(material_id)
    desired = parse_related_ids(request_data.related, f"material {material_id}")
    return await service.relationships.reconcile(material_id, MATERIAL_SOURCE, desired, request_data.relation_kind)


# Children and parents

@router.post("/materials/{material_id}/children/{child_id}", status_code=status.HTTP_201_CREATED,
             response_model=RelationshipEdge, tags=["relationships"])
async def assign_child(
    material_id: int,
    child_id: int,
    relation_kind: str = Query(CONTAINS),
    display_order: Optional[int] = Query(None),
    relationships: RelationshipService = Depends(get_relationship_service)
) -> RelationshipEdge:
    return await relationships.assign_child(material_id, child_id, relation_kind, display_order)


@router.delete("/materials/{material_id}/children/{child_id}", tags=["relationships"])
async def remove_child(
    material_id: int,
    child_id: int,
    relation_kind: str = Query(CONTAINS),
    relationships: RelationshipService = Depends(get_relationship_service)
) -> Dict[str, Any]:
    removed = await relationships.remove_child(material_id, child_id, relation_kind)
    return {"removed": removed}


@router.get("/materials/{material_id}/children", response_model=List[RelatedMaterialSummary], tags=["relationships"])
async def get_children(
    material_id: int,
    relation_kind: str = Query(CONTAINS),
    relationships: RelationshipService = Depends(get_relationship_service)
) -> List[RelatedMaterialSummary]:
    return await relationships.get_children(material_id, relation_kind)


@router.get("/materials/{material_id}/parents", response_model=List[RelatedMaterialSummary], tags=["relationships"])
async def get_parents(
    material_id: int,
    relation_kind: str = Query(CONTAINS),
    relationships: RelationshipService = Depends(get_relationship_service)
) -> List[RelatedMaterialSummary]:
    return await relationships.get_parents(material_id, relation_kind)


@router.put("/materials/{material_id}/children/order", tags=["relationships"])
async def reorder_children(
    material_id: int,
    request_data: ReorderRequest,
    relationships: RelationshipService = Depends(get_relationship_service)
) -> Dict[str, Any]:
    updated = await relationships.reorder_children(material_id, request_data.orders)
    return {"updated": updated}


# Prerequisites

@router.post("/materials/{material_id}/prerequisites/{prerequisite_id}", status_code=status.HTTP_201_CREATED,
             response_model=RelationshipEdge, tags=["relationships"])
async def add_prerequisite(
    material_id: int,
    prerequisite_id: int,
    relationships: RelationshipService = Depends(get_relationship_service)
) -> RelationshipEdge:
    return await relationships.add_prerequisite(material_id, prerequisite_id)


@router.delete("/materials/{material_id}/prerequisites/{prerequisite_id}", tags=["relationships"])
async def remove_prerequisite(
    material_id: int,
    prerequisite_id: int,
    relationships: RelationshipService = Depends(get_relationship_service)
) -> Dict[str, Any]:
    return {"removed": await relationships.remove_prerequisite(material_id, prerequisite_id)}


@router.get("/materials/{material_id}/prerequisites", response_model=List[RelatedMaterialSummary],
            tags=["relationships"])
async def get_prerequisites(
    material_id: int,
    relationships: RelationshipService = Depends(get_relationship_service)
) -> List[RelatedMaterialSummary]:
    return await relationships.get_prerequisites(material_id)


@router.get("/materials/{material_id}/dependents", response_model=List[RelatedMaterialSummary],
            tags=["relationships"])
async def get_dependents(
    material_id: int,
    relationships: RelationshipService = Depends(get_relationship_service)
) -> List[RelatedMaterialSummary]:
    return await relationships.get_dependents(material_id)


# Learning paths and training programs

@router.post("/learning-paths/{path_id}/materials/{material_id}", status_code=status.HTTP_201_CREATED,
             response_model=RelationshipEdge, tags=["learning-paths"])
async def assign_to_learning_path(
    path_id: int,
    material_id: int,
    display_order: Optional[int] = Query(None),
    relationships: RelationshipService = Depends(get_relationship_service)
) -> RelationshipEdge:
    return await relationships.assign_to_learning_path(path_id, material_id, display_order)


@router.delete("/learning-paths/{path_id}/materials/{material_id}", tags=["learning-paths"])
async def remove_from_learning_path(
    path_id: int,
    material_id: int,
    relationships: RelationshipService = Depends(get_relationship_service)
) -> Dict[str, Any]:
    return {"removed": await relationships.remove_from_learning_path(path_id, material_id)}


@router.get("/learning-paths/{path_id}/materials", response_model=List[RelatedMaterialSummary],
            tags=["learning-paths"])
async def get_learning_path_materials(
    path_id: int,
    relationships: RelationshipService = Depends(get_relationship_service)
) -> List[RelatedMaterialSummary]:
    return await relationships.get_learning_path_materials(path_id)


@router.put("/learning-paths/{path_id}/materials/order", tags=["learning-paths"])
async def reorder_learning_path(
    path_id: int,
    request_data: ReorderRequest,
    relationships: RelationshipService = Depends(get_relationship_service)
) -> Dict[str, Any]:
    return {"updated": await relationships.reorder_learning_path(path_id, request_data.orders)}


@router.post("/training-programs/{program_id}/materials/{material_id}", status_code=status.HTTP_201_CREATED,
             response_model=RelationshipEdge, tags=["training-programs"])
async def assign_to_training_program(
    program_id: int,
    material_id: int,
    relationships: RelationshipService = Depends(get_relationship_service)
) -> RelationshipEdge:
    return await relationships.assign_to_training_program(program_id, material_id)


@router.delete("/training-programs/{program_id}/materials/{material_id}", tags=["training-programs"])
async def remove_from_training_program(
    program_id: int,
    material_id: int,
    relationships: RelationshipService = Depends(get_relationship_service)
) -> Dict[str, Any]:
    return {"removed": await relationships.remove_from_training_program(program_id, material_id)}


@router.get("/training-programs/{program_id}/materials", response_model=List[RelatedMaterialSummary],
            tags=["training-programs"])
async def get_training_program_materials(
    program_id: int,
    relationships: RelationshipService = Depends(get_relationship_service)
) -> List[RelatedMaterialSummary]:
    return await relationships.get_training_program_materials(program_id)


# Sub-entity links

@router.post("/subcomponents/{kind}/{sub_entity_id}/materials/{material_id}", status_code=status.HTTP_201_CREATED,
             response_model=RelationshipEdge, tags=["subcomponents"])
async def assign_to_sub_entity(
    kind: str,
    sub_entity_id: int,
    material_id: int,
    display_order: Optional[int] = Query(None),
    relationships: RelationshipService = Depends(get_relationship_service)
) -> RelationshipEdge:
    return await relationships.assign_to_sub_entity(kind, sub_entity_id, material_id, display_order)


@router.delete("/subcomponents/{kind}/{sub_entity_id}/materials/{material_id}", tags=["subcomponents"])
async def remove_from_sub_entity(
    kind: str,
    sub_entity_id: int,
    material_id: int,
    relationships: RelationshipService = Depends(get_relationship_service)
) -> Dict[str, Any]:
    return {"removed": await relationships.remove_from_sub_entity(kind, sub_entity_id, material_id)}


@router.get("/subcomponents/{kind}/{sub_entity_id}/materials", response_model=List[RelatedMaterialSummary],
            tags=["subcomponents"])
async def get_sub_entity_materials(
    kind: str,
    sub_entity_id: int,
    relationships: RelationshipService = Depends(get_relationship_service)
) -> List[RelatedMaterialSummary]:
    return await relationships.get_sub_entity_materials(kind, sub_entity_id)


@router.put("/subcomponents/{kind}/{sub_entity_id}/materials/order", tags=["subcomponents"])
async def reorder_sub_entity_materials(
    kind: str,
    sub_entity_id: int,
    request_data: ReorderRequest,
    relationships: RelationshipService = Depends(get_relationship_service)
) -> Dict[str, Any]:
    return {"updated": await relationships.reorder_sub_entity_materials(kind, sub_entity_id, request_data.orders)}
