"""
Material Service
================
Ingestion pipeline for learning materials: resolve the variant, normalize,
validate, persist, then wire relationship edges with the ids persistence
assigned.
"""

from typing import Any, Dict, List, Optional, Tuple

from hypatia.config.settings import Config, get_config
from hypatia.core.coercion import as_int
from hypatia.core.field_access import get_field, has_field
from hypatia.core.normalizer import NormalizedMaterial, normalize_payload
from hypatia.core.type_resolver import ASSET_VARIANTS, resolve_variant
from hypatia.core.validator import validate_material
from hypatia.integrations.asset_service import AssetService
from hypatia.integrations.mongodb_service import MongoDBService, iter_sub_entities
from hypatia.models.material import (
    COLLECTIONS, CreateMaterialResponse, MaterialVariant, SubEntityKind,
    material_from_document,
)
from hypatia.models.relationship import CONTAINS, MATERIAL_SOURCE, RELATED, MaterialHierarchy
from hypatia.services.relationship_service import RelationshipService
from hypatia.utils.error_handling import NotFoundError, ValidationError
from hypatia.utils.logging_utils import get_logger

logger = get_logger(__name__)

SERVER_FIELDS = {"id", "variant", "created_at", "updated_at"}


def _locate_item(document: Dict[str, Any], variant: MaterialVariant,
                 path: Tuple[int, ...]) -> Tuple[Optional[str], Optional[int]]:
    """Map an item index path onto the persisted ``(kind, id)`` of that sub-entity."""
    name, kind = COLLECTIONS[variant]
    items = document.get(name) or []
    if path[0] >= len(items):
        return None, None
    item = items[path[0]]
    if len(path) == 1:
        return kind.value, item.get("id")
    answers = item.get("answers") or []
    if path[1] >= len(answers):
        return None, None
    return SubEntityKind.QUIZ_ANSWER.value, answers[path[1]].get("id")


class MaterialService:
    """Service for creating, updating and projecting materials."""

    def __init__(
        self,
        mongodb: Optional[MongoDBService] = None,
        relationships: Optional[RelationshipService] = None,
        assets: Optional[AssetService] = None,
        config: Optional[Config] = None
    ):
        self.config = config or get_config()
        self.mongodb = mongodb or MongoDBService(config=self.config)
        self.relationships = relationships or RelationshipService(self.mongodb, config=self.config)
        self.assets = assets or AssetService()
        logger.info("MaterialService initialized")

    def prepare(self, payload: Any, variant: Optional[MaterialVariant] = None) -> NormalizedMaterial:
        """Resolve (unless given), normalize and validate a payload without touching storage."""
        if variant is None:
            variant = resolve_variant(payload)
        strict = not self.config.ingestion.skip_invalid_related_ids
        normalized = normalize_payload(variant, payload, strict_related=strict)
        validate_material(normalized)
        return normalized

    # Creation

    async def create_material(self, payload: Dict[str, Any]) -> CreateMaterialResponse:
        """
        Create a material and its sub-entities from a raw payload.

        Raises:
            ValidationError: if the payload breaks a structural rule; nothing is stored
        """
        normalized = self.prepare(payload)
        return await self._persist(normalized)

    async def create_material_with_asset(self, payload: Dict[str, Any],
                                         asset: Dict[str, Any]) -> CreateMaterialResponse:
        """
        Create an asset, then the material pointing at it.

        If the material cannot be created the asset is deleted again. A
        failing cleanup is logged; the original error is what propagates.
        """
        normalized = self.prepare(payload)
        if normalized.variant not in ASSET_VARIANTS:
            raise ValidationError(
                f"{normalized.variant.value} materials cannot reference an asset",
                field_errors={"asset": "not supported for this material type"}
            )

        asset_id = await self.assets.create_asset(asset)
        normalized.material.asset_id = asset_id
        try:
            return await self._persist(normalized)
        except Exception as original:
            logger.error(f"Material creation failed after asset {asset_id} was created: {original}")
            try:
                await self.assets.delete_asset(asset_id)
                logger.info(f"Removed orphaned asset {asset_id}")
            except Exception as cleanup_error:
                logger.warning(f"Cleanup of asset {asset_id} failed: {cleanup_error}")
            raise

    async def _persist(self, normalized: NormalizedMaterial) -> CreateMaterialResponse:
        document = normalized.material.model_dump(exclude=SERVER_FIELDS)
        document["variant"] = normalized.variant.value
        for _, item in iter_sub_entities(document):
            item["id"] = None

        stored = await self.mongodb.create_material(document)
        await self._wire_relationships(stored, normalized)

        logger.info(f"Created {normalized.variant.value} material {stored['id']} '{stored.get('name')}'")
        return CreateMaterialResponse(
            status="success",
            message=f"{normalized.variant.value} material '{stored.get('name')}' created",
            id=stored["id"],
            name=stored.get("name", ""),
            description=stored.get("description"),
            type=normalized.variant.value,
            asset_id=stored.get("asset_id"),
            created_at=stored.get("created_at"),
        )

    async def _wire_relationships(self, stored: Dict[str, Any], normalized: NormalizedMaterial) -> None:
        if normalized.material_related is not None:
            await self.relationships.reconcile(stored["id"], MATERIAL_SOURCE, normalized.material_related, CONTAINS)

        for path, target_ids in normalized.related_by_item.items():
            kind, sub_entity_id = _locate_item(stored, normalized.variant, path)
            if sub_entity_id is None:
                logger.warning(f"No persisted sub-entity at {path} of material {stored['id']}")
                continue
            await self.relationships.reconcile(sub_entity_id, kind, target_ids, RELATED)

    # Update

    async def update_material(self, material_id: int, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Apply a payload to an existing material.

        Scalars present in the payload overwrite stored values. The
        sub-entity collection is replaced only when the payload carries it;
        items whose id belongs to this material keep that id. ``related``
        lists are reconciled only where the key is present.
        """
        current = await self.mongodb.get_material(material_id)
        if current is None:
            raise NotFoundError("Material", material_id)

        if has_field(payload, "id"):
            payload_id = as_int(get_field(payload, "id"))
            if payload_id is not None and payload_id != material_id:
                raise ValidationError(
                    f"ID mismatch: path has {material_id}, payload has {payload_id}",
                    field_errors={"id": "does not match the material being updated"}
                )

        variant = MaterialVariant(current["variant"])
        strict = not self.config.ingestion.skip_invalid_related_ids
        normalized = normalize_payload(variant, payload, strict_related=strict)

        fields = set(normalized.material.model_fields_set) - SERVER_FIELDS
        collection = normalized.collection_field
        if collection and not normalized.collection_present:
            fields.discard(collection)
        update_data = normalized.material.model_dump(include=fields)

        removed_sources = []
        if collection and collection in update_data:
            removed_sources = self._keep_known_ids(current, update_data, variant)

        merged = material_from_document({**current, **update_data})
        validate_material(NormalizedMaterial(variant=variant, material=merged))

        stored = await self.mongodb.update_material(material_id, update_data)
        if stored is None:
            raise NotFoundError("Material", material_id)
        if removed_sources:
            await self.mongodb.delete_edges_touching(removed_sources)

        await self._wire_relationships(stored, normalized)
        logger.info(f"Updated {variant.value} material {material_id}")
        return stored

    @staticmethod
    def _keep_known_ids(current: Dict[str, Any], update_data: Dict[str, Any],
                        variant: MaterialVariant) -> List[Tuple[int, str]]:
        """
        Clear item ids the material does not own so storage assigns fresh ones.

        Returns the ``(id, kind)`` pairs of existing sub-entities the update drops.
        """
        existing = {(kind, item["id"]) for kind, item in iter_sub_entities(current) if item.get("id") is not None}
        probe = {"variant": variant.value, **update_data}
        kept = set()
        for kind, item in iter_sub_entities(probe):
            key = (kind, item.get("id"))
            if key in existing and key not in kept:
                kept.add(key)
            else:
                item["id"] = None
        return [(sub_id, kind) for kind, sub_id in existing - kept]

    # Reads

    async def get_material(self, material_id: int) -> Dict[str, Any]:
        document = await self.mongodb.get_material(material_id)
        if document is None:
            raise NotFoundError("Material", material_id)
        return document

    async def list_materials(self, variant: Optional[str] = None, limit: int = 100,
                             offset: int = 0) -> List[Dict[str, Any]]:
        return await self.mongodb.list_materials(variant=variant, limit=limit, offset=offset)

    async def _related_summaries(self, source_id: int, source_kind: str, relation_kind: str) -> List[Dict[str, Any]]:
        edges = await self.mongodb.list_edges(source_id, source_kind, relation_kind)
        documents = await self.mongodb.get_materials([edge["target_id"] for edge in edges])
        return [
            {
                "id": edge["target_id"],
                "name": documents[edge["target_id"]].get("name", ""),
                "description": documents[edge["target_id"]].get("description"),
            }
            for edge in edges if edge["target_id"] in documents
        ]

    async def get_material_detail(self, material_id: int) -> Dict[str, Any]:
        """
        Material with its sub-entities, each carrying the materials it
        references, plus the materials it contains.
        """
        detail = await self.get_material(material_id)
        for kind, item in iter_sub_entities(detail):
            if item.get("id") is not None:
                item["related"] = await self._related_summaries(item["id"], kind, RELATED)
        detail["type"] = detail.get("variant")
        detail["related"] = await self._related_summaries(material_id, MATERIAL_SOURCE, CONTAINS)
        return detail

    async def get_hierarchy(self, material_id: int, max_depth: Optional[int] = None) -> MaterialHierarchy:
        return await self.relationships.get_hierarchy(material_id, max_depth)

    async def delete_material(self, material_id: int) -> bool:
        deleted = await self.mongodb.delete_material(material_id)
        if not deleted:
            raise NotFoundError("Material", material_id)
        return True
