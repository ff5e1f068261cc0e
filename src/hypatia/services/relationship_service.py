"""
Relationship Service
====================
Manages the directed, ordered, typed edges between materials and from
sub-entities, learning paths and training programs to materials.

The edge table is an arbitrary graph. Nothing stops two independent calls
from closing a ``contains`` cycle, so every traversal tracks the ids on its
current path and cuts the branch on a revisit.
"""

from typing import Any, Dict, Iterable, List, Optional, Set

from hypatia.config.settings import Config, get_config
from hypatia.core.coercion import dedupe
from hypatia.integrations.mongodb_service import MongoDBService
from hypatia.models.relationship import (
    ASSIGNED, CONTAINS, LEARNING_PATH, LEARNING_PATH_SOURCE, MATERIAL_SOURCE,
    PREREQUISITE, RELATED, SUB_ENTITY_SOURCES, TRAINING_PROGRAM_SOURCE,
    HierarchyNode, MaterialHierarchy, ReconcileResult, RelatedMaterialSummary,
    RelationshipEdge,
)
from hypatia.utils.error_handling import AppError, NotFoundError, RelationshipError, ValidationError
from hypatia.utils.logging_utils import get_logger

logger = get_logger(__name__)

# Relation kinds between materials that must stay acyclic when created explicitly
ACYCLIC_RELATIONS = frozenset({CONTAINS, PREREQUISITE})


def summarize_material(document: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": document.get("id"),
        "name": document.get("name", ""),
        "description": document.get("description"),
        "variant": document.get("variant"),
    }


class RelationshipService:
    """Service for reconciling and traversing material relationships."""

    def __init__(self, mongodb: Optional[MongoDBService] = None, config: Optional[Config] = None):
        self.config = config or get_config()
        self.mongodb = mongodb or MongoDBService(config=self.config)
        logger.info("RelationshipService initialized")

    # Reconciliation

    async def reconcile(
        self,
        source_id: int,
        source_kind: str,
        desired_ids: Iterable[int],
        relation_kind: str
    ) -> ReconcileResult:
        """
        Converge a source's edges of one relation kind to ``desired_ids``.

        Edges no longer desired are removed, missing ones are added with a
        1-based display order following the desired list. Unchanged edges
        keep their order. Per-id failures are logged and reported in
        ``failed``; they never abort the call.

        Args:
            source_id: Material or sub-entity id
            source_kind: "Material" or a sub-entity kind name
            desired_ids: Target material ids in display order
            relation_kind: Relation tag, e.g. "contains" or "related"

        Returns:
            Added, removed, unchanged and failed ids plus the final edge set
        """
        desired = dedupe(desired_ids)
        desired_set = set(desired)
        current = {
            edge["target_id"]: edge
            for edge in await self.mongodb.list_edges(source_id, source_kind, relation_kind)
        }
        result = ReconcileResult(source_id=source_id, source_kind=source_kind, relation_kind=relation_kind)

        for target_id in current:
            if target_id in desired_set:
                continue
            try:
                # False when a concurrent call already removed it
                if await self.mongodb.delete_edge(source_id, source_kind, target_id, relation_kind):
                    result.removed.append(target_id)
            except AppError as e:
                logger.warning(f"Could not remove {relation_kind} edge {source_kind}:{source_id} -> {target_id}: {e.message}")
                result.failed[target_id] = e.message

        for position, target_id in enumerate(desired, start=1):
            if target_id in current:
                result.unchanged.append(target_id)
                continue

            reason = await self._rejection_reason(source_id, source_kind, target_id, relation_kind)
            if reason is not None:
                logger.warning(f"Skipping {relation_kind} edge {source_kind}:{source_id} -> {target_id}: {reason}")
                result.failed[target_id] = reason
                continue

            try:
                _, created = await self.mongodb.create_edge({
                    "source_id": source_id,
                    "source_kind": source_kind,
                    "target_id": target_id,
                    "relation_kind": relation_kind,
                    "display_order": position,
                })
                # Not created when a concurrent call inserted it first
                if created:
                    result.added.append(target_id)
                else:
                    result.unchanged.append(target_id)
            except AppError as e:
                logger.warning(f"Could not add {relation_kind} edge {source_kind}:{source_id} -> {target_id}: {e.message}")
                result.failed[target_id] = e.message

        edges = await self.mongodb.list_edges(source_id, source_kind, relation_kind)
        result.edges = [RelationshipEdge(**edge) for edge in edges]

        if result.changed or result.failed:
            logger.info(
                f"Reconciled {relation_kind} edges of {source_kind}:{source_id}: "
                f"+{len(result.added)} -{len(result.removed)} ={len(result.unchanged)} !{len(result.failed)}"
            )
        return result

    async def _rejection_reason(self, source_id: int, source_kind: str, target_id: int,
                                relation_kind: str) -> Optional[str]:
        if not await self.mongodb.material_exists(target_id):
            return f"Material {target_id} not found"
        if self._checks_cycles(source_kind, relation_kind):
            if await self.would_create_cycle(source_id, target_id, relation_kind):
                return f"Adding material {target_id} would create a circular reference"
        return None

    def _checks_cycles(self, source_kind: str, relation_kind: str) -> bool:
        return (
            self.config.relationships.reject_cycles
            and source_kind == MATERIAL_SOURCE
            and relation_kind in ACYCLIC_RELATIONS
        )

    async def would_create_cycle(self, parent_id: int, child_id: int, relation_kind: str = CONTAINS) -> bool:
        """True when ``parent_id`` is reachable from ``child_id`` (or equal to it)."""
        if parent_id == child_id:
            return True

        visited: Set[int] = set()
        frontier = [child_id]
        while frontier:
            current = frontier.pop()
            if current in visited:
                continue
            visited.add(current)
            for edge in await self.mongodb.list_edges(current, MATERIAL_SOURCE, relation_kind):
                target_id = edge["target_id"]
                if target_id == parent_id:
                    return True
                if target_id not in visited:
                    frontier.append(target_id)
        return False

    # Hierarchy

    async def get_hierarchy(self, root_id: int, max_depth: Optional[int] = None) -> MaterialHierarchy:
        """
        Walk ``contains`` edges from a root material.

        A material reachable along several paths appears once per path, so
        expansion stops after ``relationships.max_hierarchy_nodes`` nodes and
        the result is flagged ``truncated``.

        Args:
            root_id: Root material id
            max_depth: Deepest level to expand; defaults to the configured value

        Returns:
            The tree below the root with node count and deepest level reached
        """
        limits = self.config.relationships
        if max_depth is None:
            max_depth = limits.default_max_depth
        if not 1 <= max_depth <= limits.max_allowed_depth:
            raise ValidationError(
                f"max_depth must be between 1 and {limits.max_allowed_depth}",
                field_errors={"max_depth": str(max_depth)}
            )

        root = await self.mongodb.get_material(root_id)
        if root is None:
            raise NotFoundError("Material", root_id)

        stats = {"nodes": 0, "depth": 0, "truncated": False}
        cache: Dict[int, Optional[Dict[str, Any]]] = {root_id: root}
        edge_cache: Dict[int, List[Dict[str, Any]]] = {}

        async def load(material_id: int) -> Optional[Dict[str, Any]]:
            if material_id not in cache:
                cache[material_id] = await self.mongodb.get_material(material_id)
            return cache[material_id]

        async def expand(material_id: int, depth: int, path: frozenset) -> List[HierarchyNode]:
            if depth > max_depth or stats["truncated"]:
                return []
            if material_id not in edge_cache:
                edge_cache[material_id] = await self.mongodb.list_edges(material_id, MATERIAL_SOURCE, CONTAINS)
            nodes = []
            for edge in edge_cache[material_id]:
                child_id = edge["target_id"]
                if child_id in path:
                    logger.debug(f"Cycle at material {child_id} below {material_id}, truncating branch")
                    continue
                child = await load(child_id)
                if child is None:
                    logger.warning(f"Edge {material_id} -> {child_id} points at a missing material")
                    continue

                if stats["nodes"] >= limits.max_hierarchy_nodes:
                    logger.warning(
                        f"Hierarchy of material {root_id} exceeds {limits.max_hierarchy_nodes} nodes, truncating"
                    )
                    stats["truncated"] = True
                    break

                stats["nodes"] += 1
                stats["depth"] = max(stats["depth"], depth)
                node = HierarchyNode(
                    material=summarize_material(child),
                    relation_kind=edge["relation_kind"],
                    display_order=edge.get("display_order"),
                    depth=depth,
                )
                node.children = await expand(child_id, depth + 1, path | {child_id})
                nodes.append(node)
            return nodes

        children = await expand(root_id, 1, frozenset({root_id}))
        return MaterialHierarchy(
            root_material=summarize_material(root),
            children=children,
            total_depth=stats["depth"],
            total_materials=stats["nodes"] + 1,
            truncated=stats["truncated"],
        )

    # Explicit assignment

    async def _require_material(self, material_id: int) -> None:
        if not await self.mongodb.material_exists(material_id):
            raise NotFoundError("Material", material_id)

    async def _assign(
        self,
        source_id: int,
        source_kind: str,
        target_id: int,
        relation_kind: str,
        display_order: Optional[int] = None
    ) -> RelationshipEdge:
        await self._require_material(target_id)

        existing = await self.mongodb.list_edges(source_id, source_kind, relation_kind)
        if any(edge["target_id"] == target_id for edge in existing):
            raise RelationshipError(
                f"Material {target_id} is already linked to {source_kind} {source_id} as {relation_kind}",
                source_id, target_id, relation_kind
            )
        if self._checks_cycles(source_kind, relation_kind):
            if await self.would_create_cycle(source_id, target_id, relation_kind):
                raise RelationshipError(
                    f"Linking material {target_id} under {source_id} would create a circular reference",
                    source_id, target_id, relation_kind
                )

        if display_order is None:
            orders = [edge.get("display_order") or 0 for edge in existing]
            display_order = max(orders, default=0) + 1

        edge, _ = await self.mongodb.create_edge({
            "source_id": source_id,
            "source_kind": source_kind,
            "target_id": target_id,
            "relation_kind": relation_kind,
            "display_order": display_order,
        })
        logger.info(f"Linked {source_kind}:{source_id} -> {target_id} ({relation_kind}, order {display_order})")
        return RelationshipEdge(**edge)

    async def _unassign(self, source_id: int, source_kind: str, target_id: int, relation_kind: str) -> bool:
        removed = await self.mongodb.delete_edge(source_id, source_kind, target_id, relation_kind)
        if removed:
            logger.info(f"Unlinked {source_kind}:{source_id} -> {target_id} ({relation_kind})")
        else:
            logger.warning(f"No {relation_kind} edge {source_kind}:{source_id} -> {target_id} to remove")
        return removed

    async def _targets(self, source_id: int, source_kind: str, relation_kind: str) -> List[RelatedMaterialSummary]:
        edges = await self.mongodb.list_edges(source_id, source_kind, relation_kind)
        documents = await self.mongodb.get_materials([edge["target_id"] for edge in edges])
        return [
            RelatedMaterialSummary(**summarize_material(documents[edge["target_id"]]),
                                   display_order=edge.get("display_order"))
            for edge in edges if edge["target_id"] in documents
        ]

    async def _reorder(self, source_id: int, source_kind: str, relation_kind: str,
                       orders: Dict[int, int]) -> List[int]:
        updated = []
        for target_id, display_order in orders.items():
            if await self.mongodb.update_edge_order(source_id, source_kind, target_id, relation_kind, display_order):
                updated.append(target_id)
            else:
                logger.warning(f"Cannot reorder: no {relation_kind} edge {source_kind}:{source_id} -> {target_id}")
        return updated

    async def assign_child(self, parent_id: int, child_id: int, relation_kind: str = CONTAINS,
                           display_order: Optional[int] = None) -> RelationshipEdge:
        if parent_id == child_id:
            raise RelationshipError("A material cannot be linked to itself", parent_id, child_id, relation_kind)
        await self._require_material(parent_id)
        return await self._assign(parent_id, MATERIAL_SOURCE, child_id, relation_kind, display_order)

    async def remove_child(self, parent_id: int, child_id: int, relation_kind: str = CONTAINS) -> bool:
        return await self._unassign(parent_id, MATERIAL_SOURCE, child_id, relation_kind)

    async def get_children(self, parent_id: int, relation_kind: str = CONTAINS) -> List[RelatedMaterialSummary]:
        await self._require_material(parent_id)
        return await self._targets(parent_id, MATERIAL_SOURCE, relation_kind)

    async def get_parents(self, child_id: int, relation_kind: str = CONTAINS) -> List[RelatedMaterialSummary]:
        await self._require_material(child_id)
        edges = await self.mongodb.list_edges_to(child_id, relation_kind, MATERIAL_SOURCE)
        documents = await self.mongodb.get_materials([edge["source_id"] for edge in edges])
        return [
            RelatedMaterialSummary(**summarize_material(documents[edge["source_id"]]),
                                   display_order=edge.get("display_order"))
            for edge in edges if edge["source_id"] in documents
        ]

    async def reorder_children(self, parent_id: int, orders: Dict[int, int],
                               relation_kind: str = CONTAINS) -> List[int]:
        return await self._reorder(parent_id, MATERIAL_SOURCE, relation_kind, orders)

    # Prerequisites

    async def add_prerequisite(self, material_id: int, prerequisite_id: int) -> RelationshipEdge:
        return await self.assign_child(material_id, prerequisite_id, PREREQUISITE)

    async def remove_prerequisite(self, material_id: int, prerequisite_id: int) -> bool:
        return await self.remove_child(material_id, prerequisite_id, PREREQUISITE)

    async def get_prerequisites(self, material_id: int) -> List[RelatedMaterialSummary]:
        return await self.get_children(material_id, PREREQUISITE)

    async def get_dependents(self, material_id: int) -> List[RelatedMaterialSummary]:
        return await self.get_parents(material_id, PREREQUISITE)

    # Learning paths and training programs

    async def assign_to_learning_path(self, path_id: int, material_id: int,
                                      display_order: Optional[int] = None) -> RelationshipEdge:
        return await self._assign(path_id, LEARNING_PATH_SOURCE, material_id, LEARNING_PATH, display_order)

    async def remove_from_learning_path(self, path_id: int, material_id: int) -> bool:
        return await self._unassign(path_id, LEARNING_PATH_SOURCE, material_id, LEARNING_PATH)

    async def get_learning_path_materials(self, path_id: int) -> List[RelatedMaterialSummary]:
        return await self._targets(path_id, LEARNING_PATH_SOURCE, LEARNING_PATH)

    async def reorder_learning_path(self, path_id: int, orders: Dict[int, int]) -> List[int]:
        return await self._reorder(path_id, LEARNING_PATH_SOURCE, LEARNING_PATH, orders)

    async def assign_to_training_program(self, program_id: int, material_id: int) -> RelationshipEdge:
        return await self._assign(program_id, TRAINING_PROGRAM_SOURCE, material_id, ASSIGNED)

    async def remove_from_training_program(self, program_id: int, material_id: int) -> bool:
        return await self._unassign(program_id, TRAINING_PROGRAM_SOURCE, material_id, ASSIGNED)

    async def get_training_program_materials(self, program_id: int) -> List[RelatedMaterialSummary]:
        return await self._targets(program_id, TRAINING_PROGRAM_SOURCE, ASSIGNED)

    # Sub-entity links

    async def _require_sub_entity(self, kind: str, sub_entity_id: int) -> None:
        if kind not in SUB_ENTITY_SOURCES:
            raise ValidationError(
                f"Unknown sub-entity kind '{kind}'",
                field_errors={"kind": f"expected one of {sorted(SUB_ENTITY_SOURCES)}"}
            )
        if not await self.mongodb.sub_entity_exists(kind, sub_entity_id):
            raise NotFoundError(kind, sub_entity_id)

    async def assign_to_sub_entity(self, kind: str, sub_entity_id: int, material_id: int,
                                   display_order: Optional[int] = None) -> RelationshipEdge:
        await self._require_sub_entity(kind, sub_entity_id)
        return await self._assign(sub_entity_id, kind, material_id, RELATED, display_order)

    async def remove_from_sub_entity(self, kind: str, sub_entity_id: int, material_id: int) -> bool:
        await self._require_sub_entity(kind, sub_entity_id)
        return await self._unassign(sub_entity_id, kind, material_id, RELATED)

    async def get_sub_entity_materials(self, kind: str, sub_entity_id: int) -> List[RelatedMaterialSummary]:
        await self._require_sub_entity(kind, sub_entity_id)
        return await self._targets(sub_entity_id, kind, RELATED)

    async def reorder_sub_entity_materials(self, kind: str, sub_entity_id: int,
                                           orders: Dict[int, int]) -> List[int]:
        await self._require_sub_entity(kind, sub_entity_id)
        return await self._reorder(sub_entity_id, kind, RELATED, orders)
