"""
ChapterIP - Derivative Tree

Builds the lineage of an IP asset from the relationship records, down to a
caller-supplied depth. The depth bound is what stops traversal; the graph
is not checked for cycles.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from errors import NotFoundError, OperationResult, ValidationError
from ip_records import IPRecordStore
from storage import StorageError

logger = logging.getLogger(__name__)

DEFAULT_TREE_DEPTH = 3
MAX_TREE_DEPTH = 10

# Mean descendant quality must move this far from the node's own score
QUALITY_TREND_THRESHOLD = 5


@dataclass
class InfluenceMetrics:
    total_derivatives: int = 0
    avg_similarity_score: float = 0.0
    quality_trend: str = "stable"

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalDerivatives": self.total_derivatives,
            "avgSimilarityScore": self.avg_similarity_score,
            "qualityTrend": self.quality_trend,
        }


@dataclass
class DerivativeTreeNode:
    ip_id: str
    depth: int
    parent_ip_id: str | None = None
    chapter_id: str = ""
    title: str = ""
    creator_address: str = ""
    similarity_to_parent: float | None = None
    quality_score: float | None = None
    license_terms_id: str | None = None
    license_tier: str | None = None
    children: list["DerivativeTreeNode"] = field(default_factory=list)
    influence: InfluenceMetrics = field(default_factory=InfluenceMetrics)

    def descendants(self) -> list["DerivativeTreeNode"]:
        """All nodes below this one, depth-first."""
        nodes = []
        for child in self.children:
            nodes.append(child)
            nodes.extend(child.descendants())
        return nodes

    def count_nodes(self) -> int:
        return 1 + sum(child.count_nodes() for child in self.children)

    def max_depth(self) -> int:
        if not self.children:
            return self.depth
        return max(child.max_depth() for child in self.children)

    def to_dict(self) -> dict[str, Any]:
        return {
            "ipId": self.ip_id,
            "parentIpId": self.parent_ip_id,
            "chapterId": self.chapter_id,
            "title": self.title,
            "creatorAddress": self.creator_address,
            "depth": self.depth,
            "similarityToParent": self.similarity_to_parent,
            "qualityScore": self.quality_score,
            "licenseTermsId": self.license_terms_id,
            "licenseTier": self.license_tier,
            "influenceMetrics": self.influence.to_dict(),
            "children": [child.to_dict() for child in self.children],
        }


@dataclass
class DerivativeTreeResult(OperationResult):
    tree: DerivativeTreeNode | None = None

    def to_dict(self) -> dict[str, Any]:
        result = self._base_dict()
        if self.tree:
            result["tree"] = self.tree.to_dict()
            result["totalNodes"] = self.tree.count_nodes()
            result["maxDepth"] = self.tree.max_depth()
        return result


def quality_trend(node_quality: float | None, descendant_qualities: list[float]) -> str:
    """Classify descendant quality against a node's own quality."""
    if node_quality is None or not descendant_qualities:
        return "stable"

    delta = sum(descendant_qualities) / len(descendant_qualities) - node_quality
    if delta > QUALITY_TREND_THRESHOLD:
        return "improving"
    if delta < -QUALITY_TREND_THRESHOLD:
        return "declining"
    return "stable"


class DerivativeTreeService:
    """
    Reads derivative lineage from the record store.

    Usage:
        service = DerivativeTreeService(records)
        result = service.query_derivative_tree(ip_id, depth=2)
    """

    def __init__(self, records: IPRecordStore):
        self.records = records

    def query_derivative_tree(self, ip_id: str, depth: int = DEFAULT_TREE_DEPTH) -> DerivativeTreeResult:
        """
        Build the derivative tree rooted at ip_id.

        Nodes are included down to `depth` levels below the root.
        """
        try:
            if not ip_id:
                raise ValidationError("IP ID is required")
            if not 0 <= depth <= MAX_TREE_DEPTH:
                raise ValidationError(f"Depth must be between 0 and {MAX_TREE_DEPTH}")

            root = self._build_node(ip_id, 0)
            if root is None:
                raise NotFoundError(f"No IP asset or derivatives recorded for {ip_id}", {"ipId": ip_id})

            self._build_children(root, depth)
            self._calculate_influence(root)
        except (ValidationError, NotFoundError) as e:
            return DerivativeTreeResult.failure(e)
        except StorageError as e:
            logger.error("Failed to read derivative records for %s: %s", ip_id, e)
            return DerivativeTreeResult(success=False, error=str(e), error_kind="storage")

        logger.info(
            "Derivative tree built for %s: %d nodes, max depth %d",
            ip_id,
            root.count_nodes(),
            root.max_depth(),
        )
        return DerivativeTreeResult(success=True, tree=root)

    def _build_node(self, ip_id: str, depth: int) -> DerivativeTreeNode | None:
        relationship = self.records.get_relationship(ip_id)
        if relationship is not None:
            return DerivativeTreeNode(
                ip_id=ip_id,
                depth=depth,
                parent_ip_id=relationship.parent_ip_id,
                title=relationship.title,
                creator_address=relationship.creator_address,
                similarity_to_parent=relationship.similarity_score,
                quality_score=relationship.quality_score,
                license_terms_id=relationship.license_terms_id,
                license_tier=relationship.license_tier,
            )

        asset = self.records.get_ip_asset(ip_id)
        if asset is not None:
            return DerivativeTreeNode(
                ip_id=ip_id,
                depth=depth,
                chapter_id=asset.get("chapterId", ""),
                creator_address=asset.get("ownerAddress", ""),
                quality_score=asset.get("qualityScore"),
                license_terms_id=asset.get("licenseTermsId"),
            )

        # Roots registered outside this engine are known only by their children
        if depth == 0 and self.records.list_children(ip_id):
            return DerivativeTreeNode(ip_id=ip_id, depth=depth)
        return None

    def _build_children(self, node: DerivativeTreeNode, max_depth: int) -> None:
        if node.depth >= max_depth:
            return

        for child_ip_id in self.records.list_children(node.ip_id):
            child = self._build_node(child_ip_id, node.depth + 1)
            if child is None:
                logger.warning("Child %s of %s has no record", child_ip_id, node.ip_id)
                continue
            node.children.append(child)
            self._build_children(child, max_depth)

    def _calculate_influence(self, node: DerivativeTreeNode) -> None:
        for child in node.children:
            self._calculate_influence(child)

        descendants = node.descendants()
        similarities = [d.similarity_to_parent for d in descendants if d.similarity_to_parent is not None]
        qualities = [d.quality_score for d in descendants if d.quality_score is not None]

        node.influence = InfluenceMetrics(
            total_derivatives=len(descendants),
            avg_similarity_score=sum(similarities) / len(similarities) if similarities else 0.0,
            quality_trend=quality_trend(node.quality_score, qualities),
        )
