"""
MongoDB Service
===============
Persistence for materials (with their embedded sub-entities) and for the
relationship edge table. Runs against MongoDB through motor, or entirely in
memory when mock mode is enabled.
"""

import copy
import itertools
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional, Tuple

import motor.motor_asyncio
from pymongo import ASCENDING, ReturnDocument
from pymongo.errors import PyMongoError

from hypatia.config.settings import Config, get_config
from hypatia.models.material import COLLECTIONS, MaterialVariant, SubEntityKind
from hypatia.models.relationship import MATERIAL_SOURCE
from hypatia.utils.error_handling import PersistenceError
from hypatia.utils.logging_utils import get_logger

logger = get_logger(__name__)

EdgeKey = Tuple[int, str, int, str]

EDGE_KEY_FIELDS = ("source_id", "source_kind", "target_id", "relation_kind")


def edge_key(edge: Dict[str, Any]) -> EdgeKey:
    return tuple(edge[name] for name in EDGE_KEY_FIELDS)


def _edge_sort_key(edge: Dict[str, Any]):
    order = edge.get("display_order")
    return (order is None, order or 0, edge.get("seq", 0))


def iter_sub_entities(document: Dict[str, Any]) -> Iterator[Tuple[str, Dict[str, Any]]]:
    """Yield ``(kind, item)`` for every sub-entity embedded in a material document."""
    try:
        variant = MaterialVariant(document.get("variant"))
    except ValueError:
        return
    entry = COLLECTIONS.get(variant)
    if entry is None:
        return
    name, kind = entry
    for item in document.get(name) or []:
        yield kind.value, item
        if kind == SubEntityKind.QUIZ_QUESTION:
            for answer in item.get("answers") or []:
                yield SubEntityKind.QUIZ_ANSWER.value, answer


# Sub-entity kind -> dotted path of its id inside a material document
SUB_ENTITY_ID_PATHS = {
    SubEntityKind.WORKFLOW_STEP.value: "steps.id",
    SubEntityKind.CHECKLIST_ENTRY.value: "entries.id",
    SubEntityKind.QUESTIONNAIRE_ENTRY.value: "entries.id",
    SubEntityKind.QUIZ_QUESTION.value: "questions.id",
    SubEntityKind.QUIZ_ANSWER.value: "questions.answers.id",
    SubEntityKind.VIDEO_TIMESTAMP.value: "timestamps.id",
    SubEntityKind.IMAGE_ANNOTATION.value: "annotations.id",
}

SUB_ENTITY_VARIANTS = {
    SubEntityKind.WORKFLOW_STEP.value: MaterialVariant.WORKFLOW.value,
    SubEntityKind.CHECKLIST_ENTRY.value: MaterialVariant.CHECKLIST.value,
    SubEntityKind.QUESTIONNAIRE_ENTRY.value: MaterialVariant.QUESTIONNAIRE.value,
    SubEntityKind.QUIZ_QUESTION.value: MaterialVariant.QUIZ.value,
    SubEntityKind.QUIZ_ANSWER.value: MaterialVariant.QUIZ.value,
    SubEntityKind.VIDEO_TIMESTAMP.value: MaterialVariant.VIDEO.value,
    SubEntityKind.IMAGE_ANNOTATION.value: MaterialVariant.IMAGE.value,
}


class MongoDBService:
    """Service for interacting with MongoDB."""

    def __init__(self, use_mock: Optional[bool] = None, config: Optional[Config] = None):
        """
        Initialize the MongoDB service.

        Args:
            use_mock: Force mock mode on or off; defaults to ``mongo.use_mock``
            config: Configuration to use instead of the global one
        """
        self.config = config or get_config()
        mongo_config = self.config.mongo
        self.mock = mongo_config.use_mock if use_mock is None else use_mock

        if self.mock:
            self.mock_data = {
                "materials": {},
                "edges": {},
            }
            self._mock_counters = {}
            self._edge_seq = itertools.count(1)
            logger.info("MongoDBService initialized in mock mode")
        else:
            self.client = motor.motor_asyncio.AsyncIOMotorClient(mongo_config.uri)
            self.db = self.client[mongo_config.database]
            self.materials_collection = self.db[mongo_config.materials_collection]
            self.edges_collection = self.db[mongo_config.edges_collection]
            self.counters_collection = self.db[mongo_config.counters_collection]
            logger.info(f"MongoDBService connected to database: {mongo_config.database}")

    async def initialize(self) -> None:
        """Create indexes; a no-op in mock mode."""
        if self.mock:
            return
        try:
            await self.materials_collection.create_index("id", unique=True)
            await self.materials_collection.create_index("variant")
            for path in set(SUB_ENTITY_ID_PATHS.values()):
                await self.materials_collection.create_index(path)
            await self.edges_collection.create_index(
                [(name, ASCENDING) for name in EDGE_KEY_FIELDS], unique=True
            )
            await self.edges_collection.create_index("target_id")
            logger.info("MongoDB indexes created successfully")
        except PyMongoError as e:
            logger.error(f"Error creating MongoDB indexes: {str(e)}")
            raise PersistenceError(f"Could not create indexes: {e}", operation="initialize") from e

    async def check_connection(self) -> bool:
        if self.mock:
            return True
        try:
            await self.client.admin.command('ping')
            return True
        except PyMongoError as e:
            logger.error(f"Database connection check failed: {str(e)}")
            return False

    async def next_id(self, counter: str) -> int:
        """Allocate the next integer id from a named counter."""
        if self.mock:
            sequence = self._mock_counters.setdefault(counter, itertools.count(1))
            return next(sequence)
        try:
            result = await self.counters_collection.find_one_and_update(
                {"_id": counter},
                {"$inc": {"seq": 1}},
                upsert=True,
                return_document=ReturnDocument.AFTER
            )
            return result["seq"]
        except PyMongoError as e:
            logger.error(f"Error allocating id from counter {counter}: {str(e)}")
            raise PersistenceError(str(e), operation="next_id") from e

    async def _assign_sub_entity_ids(self, document: Dict[str, Any]) -> None:
        for _, item in iter_sub_entities(document):
            if item.get("id") is None:
                item["id"] = await self.next_id("sub_entities")

    # Material operations

    async def create_material(self, document: Dict[str, Any]) -> Dict[str, Any]:
        """
        Store a material together with its sub-entities.

        Args:
            document: Material fields, including the embedded collection

        Returns:
            The stored document with ``id`` and sub-entity ids assigned
        """
        document = copy.deepcopy(document)
        document["id"] = await self.next_id("materials")
        await self._assign_sub_entity_ids(document)
        now = datetime.now()
        document["created_at"] = now
        document["updated_at"] = now

        if self.mock:
            self.mock_data["materials"][document["id"]] = document
            logger.info(f"Created material with ID: {document['id']} (mock)")
            return copy.deepcopy(document)

        try:
            await self.materials_collection.insert_one(document)
            document.pop("_id", None)
            logger.info(f"Created material with ID: {document['id']}")
            return document
        except PyMongoError as e:
            logger.error(f"Error creating material: {str(e)}")
            raise PersistenceError(str(e), operation="create_material") from e

    async def update_material(self, material_id: int, update_data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Update a material; sub-entities without an id receive one.

        Returns:
            Updated document or None if not found
        """
        update_data = copy.deepcopy(update_data)
        for name in ("id", "_id", "created_at", "variant"):
            update_data.pop(name, None)
        update_data["updated_at"] = datetime.now()

        if self.mock:
            current = self.mock_data["materials"].get(material_id)
            if current is None:
                logger.warning(f"Material not found for update: {material_id} (mock)")
                return None
            merged = {**current, **update_data}
            await self._assign_sub_entity_ids(merged)
            self.mock_data["materials"][material_id] = merged
            logger.info(f"Updated material with ID: {material_id} (mock)")
            return copy.deepcopy(merged)

        try:
            current = await self.materials_collection.find_one({"id": material_id})
            if current is None:
                logger.warning(f"Material not found for update: {material_id}")
                return None
            probe = {**current, **update_data}
            await self._assign_sub_entity_ids(probe)
            update_data = {key: probe[key] for key in update_data}
            result = await self.materials_collection.find_one_and_update(
                {"id": material_id},
                {"$set": update_data},
                return_document=ReturnDocument.AFTER
            )
            if result is not None:
                result.pop("_id", None)
                logger.info(f"Updated material with ID: {material_id}")
            return result
        except PyMongoError as e:
            logger.error(f"Error updating material: {str(e)}")
            raise PersistenceError(str(e), operation="update_material") from e

    async def get_material(self, material_id: int) -> Optional[Dict[str, Any]]:
        if self.mock:
            document = self.mock_data["materials"].get(material_id)
            return copy.deepcopy(document) if document is not None else None
        try:
            result = await self.materials_collection.find_one({"id": material_id}, {"_id": 0})
            return result
        except PyMongoError as e:
            logger.error(f"Error getting material: {str(e)}")
            raise PersistenceError(str(e), operation="get_material") from e

    async def get_materials(self, material_ids: List[int]) -> Dict[int, Dict[str, Any]]:
        """Fetch several materials at once, keyed by id; missing ids are absent."""
        if self.mock:
            return {
                material_id: copy.deepcopy(self.mock_data["materials"][material_id])
                for material_id in material_ids
                if material_id in self.mock_data["materials"]
            }
        try:
            cursor = self.materials_collection.find({"id": {"$in": list(material_ids)}}, {"_id": 0})
            return {document["id"]: document async for document in cursor}
        except PyMongoError as e:
            logger.error(f"Error getting materials: {str(e)}")
            raise PersistenceError(str(e), operation="get_materials") from e

    async def list_materials(self, variant: Optional[str] = None, limit: int = 100,
                             offset: int = 0) -> List[Dict[str, Any]]:
        if self.mock:
            documents = [
                document for _, document in sorted(self.mock_data["materials"].items())
                if variant is None or document.get("variant") == variant
            ]
            return copy.deepcopy(documents[offset:offset + limit])
        try:
            query = {"variant": variant} if variant else {}
            cursor = self.materials_collection.find(query, {"_id": 0}).sort("id", ASCENDING).skip(offset).limit(limit)
            return [document async for document in cursor]
        except PyMongoError as e:
            logger.error(f"Error listing materials: {str(e)}")
            raise PersistenceError(str(e), operation="list_materials") from e

    async def material_exists(self, material_id: int) -> bool:
        if self.mock:
            return material_id in self.mock_data["materials"]
        try:
            return await self.materials_collection.count_documents({"id": material_id}, limit=1) > 0
        except PyMongoError as e:
            logger.error(f"Error checking material existence: {str(e)}")
            raise PersistenceError(str(e), operation="material_exists") from e

    async def find_sub_entity_owner(self, kind: str, sub_entity_id: int) -> Optional[int]:
        """Return the id of the material owning the given sub-entity, if any."""
        if kind not in SUB_ENTITY_ID_PATHS:
            return None
        if self.mock:
            for material_id, document in self.mock_data["materials"].items():
                for item_kind, item in iter_sub_entities(document):
                    if item_kind == kind and item.get("id") == sub_entity_id:
                        return material_id
            return None
        try:
            document = await self.materials_collection.find_one(
                {"variant": SUB_ENTITY_VARIANTS[kind], SUB_ENTITY_ID_PATHS[kind]: sub_entity_id},
                {"id": 1}
            )
            return document["id"] if document else None
        except PyMongoError as e:
            logger.error(f"Error finding sub-entity {kind} {sub_entity_id}: {str(e)}")
            raise PersistenceError(str(e), operation="find_sub_entity_owner") from e

    async def sub_entity_exists(self, kind: str, sub_entity_id: int) -> bool:
        return await self.find_sub_entity_owner(kind, sub_entity_id) is not None

    async def delete_material(self, material_id: int) -> bool:
        """Delete a material, its sub-entities and every edge that touches them."""
        document = await self.get_material(material_id)
        if document is None:
            logger.warning(f"Material not found for deletion: {material_id}")
            return False

        sources = [(material_id, MATERIAL_SOURCE)]
        sources.extend((item["id"], kind) for kind, item in iter_sub_entities(document) if item.get("id") is not None)
        await self.delete_edges_touching(sources, material_id)

        if self.mock:
            del self.mock_data["materials"][material_id]
            logger.info(f"Deleted material with ID: {material_id} (mock)")
            return True
        try:
            result = await self.materials_collection.delete_one({"id": material_id})
            logger.info(f"Deleted material with ID: {material_id}")
            return result.deleted_count > 0
        except PyMongoError as e:
            logger.error(f"Error deleting material: {str(e)}")
            raise PersistenceError(str(e), operation="delete_material") from e

    # Edge operations

    async def list_edges(self, source_id: int, source_kind: str,
                         relation_kind: Optional[str] = None) -> List[Dict[str, Any]]:
        """Edges leaving a source, ordered by display order."""
        if self.mock:
            edges = [
                edge for edge in self.mock_data["edges"].values()
                if edge["source_id"] == source_id and edge["source_kind"] == source_kind
                and (relation_kind is None or edge["relation_kind"] == relation_kind)
            ]
            return copy.deepcopy(sorted(edges, key=_edge_sort_key))
        query = {"source_id": source_id, "source_kind": source_kind}
        if relation_kind is not None:
            query["relation_kind"] = relation_kind
        return await self._find_edges(query)

    async def list_edges_to(self, target_id: int, relation_kind: Optional[str] = None,
                            source_kind: Optional[str] = None) -> List[Dict[str, Any]]:
        """Edges arriving at a target material."""
        if self.mock:
            edges = [
                edge for edge in self.mock_data["edges"].values()
                if edge["target_id"] == target_id
                and (relation_kind is None or edge["relation_kind"] == relation_kind)
                and (source_kind is None or edge["source_kind"] == source_kind)
            ]
            return copy.deepcopy(sorted(edges, key=_edge_sort_key))
        query = {"target_id": target_id}
        if relation_kind is not None:
            query["relation_kind"] = relation_kind
        if source_kind is not None:
            query["source_kind"] = source_kind
        return await self._find_edges(query)

    async def _find_edges(self, query: Dict[str, Any]) -> List[Dict[str, Any]]:
        try:
            cursor = self.edges_collection.find(query, {"_id": 0})
            return sorted([edge async for edge in cursor], key=_edge_sort_key)
        except PyMongoError as e:
            logger.error(f"Error listing edges: {str(e)}")
            raise PersistenceError(str(e), operation="list_edges") from e

    async def create_edge(self, edge: Dict[str, Any]) -> Tuple[Dict[str, Any], bool]:
        """
        Insert an edge unless one with the same key exists.

        Returns:
            The stored edge and whether it was newly created
        """
        edge = dict(edge)
        key = edge_key(edge)
        edge.setdefault("created_at", datetime.now())

        if self.mock:
            existing = self.mock_data["edges"].get(key)
            if existing is not None:
                return copy.deepcopy(existing), False
            edge["seq"] = next(self._edge_seq)
            self.mock_data["edges"][key] = edge
            logger.debug(f"Created edge {key} (mock)")
            return copy.deepcopy(edge), True

        try:
            edge["seq"] = await self.next_id("edges")
            result = await self.edges_collection.update_one(
                dict(zip(EDGE_KEY_FIELDS, key)),
                {"$setOnInsert": {k: v for k, v in edge.items() if k not in EDGE_KEY_FIELDS}},
                upsert=True
            )
            created = result.upserted_id is not None
            stored = await self.edges_collection.find_one(dict(zip(EDGE_KEY_FIELDS, key)), {"_id": 0})
            return stored, created
        except PyMongoError as e:
            logger.error(f"Error creating edge {key}: {str(e)}")
            raise PersistenceError(str(e), operation="create_edge") from e

    async def delete_edge(self, source_id: int, source_kind: str, target_id: int, relation_kind: str) -> bool:
        key = (source_id, source_kind, target_id, relation_kind)
        if self.mock:
            removed = self.mock_data["edges"].pop(key, None)
            return removed is not None
        try:
            result = await self.edges_collection.delete_one(dict(zip(EDGE_KEY_FIELDS, key)))
            return result.deleted_count > 0
        except PyMongoError as e:
            logger.error(f"Error deleting edge {key}: {str(e)}")
            raise PersistenceError(str(e), operation="delete_edge") from e

    async def update_edge_order(self, source_id: int, source_kind: str, target_id: int,
                                relation_kind: str, display_order: int) -> bool:
        key = (source_id, source_kind, target_id, relation_kind)
        if self.mock:
            edge = self.mock_data["edges"].get(key)
            if edge is None:
                return False
            edge["display_order"] = display_order
            return True
        try:
            result = await self.edges_collection.update_one(
                dict(zip(EDGE_KEY_FIELDS, key)),
                {"$set": {"display_order": display_order}}
            )
            return result.matched_count > 0
        except PyMongoError as e:
            logger.error(f"Error reordering edge {key}: {str(e)}")
            raise PersistenceError(str(e), operation="update_edge_order") from e

    async def delete_edges_touching(self, sources: List[Tuple[int, str]], target_id: Optional[int] = None) -> int:
        """Remove edges leaving any of ``sources`` or arriving at ``target_id``."""
        if self.mock:
            doomed = [
                key for key, edge in self.mock_data["edges"].items()
                if (edge["source_id"], edge["source_kind"]) in sources
                or (target_id is not None and edge["target_id"] == target_id)
            ]
            for key in doomed:
                del self.mock_data["edges"][key]
            return len(doomed)
        try:
            clauses = [{"source_id": source_id, "source_kind": kind} for source_id, kind in sources]
            if target_id is not None:
                clauses.append({"target_id": target_id})
            if not clauses:
                return 0
            result = await self.edges_collection.delete_many({"$or": clauses})
            return result.deleted_count
        except PyMongoError as e:
            logger.error(f"Error deleting edges for material {target_id}: {str(e)}")
            raise PersistenceError(str(e), operation="delete_edges_touching") from e

    async def close(self) -> None:
        if not self.mock:
            self.client.close()
