"""Security prioritizer - rank access points by tier and exposure.

For every access point inside a graph function::

    risk = tier_weight[tier] * operation_weight[op] / (1 + distance_penalty * distance)

``distance`` is the number of calls from the nearest entry point (backward
BFS from the enclosing function). Unreachable points score
``unreachable_score`` and land in the lowest band whatever their tier.
Ranking is descending risk, then file, then line.
"""

from typing import Any

from driftscan.boundaries.sensitivity import classify_name
from driftscan.boundaries.types import (
    SEVERITY_BANDS,
    DataAccessMap,
    DataAccessPoint,
    PrioritizedAccessPoint,
    PrioritizedScanResult,
    SecuritySummary,
    max_tier,
    tier_rank,
)
from driftscan.config_runtime import DEFAULTS, reachable_score_floor
from driftscan.graph.types import CallEdge, CallGraph
from driftscan.utils.logging import logger


class SecurityPrioritizer:
    """Joins a CallGraph with a DataAccessMap into a risk ranking."""

    def __init__(self, config: dict[str, Any] | None = None):
        risk = (config or DEFAULTS)["risk"]
        self.tier_weights: dict[str, float] = dict(risk["tier_weights"])
        self.operation_weights: dict[str, float] = dict(risk["operation_weights"])
        self.distance_penalty: float = risk["distance_penalty"]
        # Never above the lowest reachable score, even for unvalidated configs
        self.unreachable_score: float = min(risk["unreachable_score"], reachable_score_floor(risk))
        self.thresholds: dict[str, float] = dict(risk["severity_thresholds"])
        self.max_paths: int = risk.get("max_paths", 25)

    def score(self, tier: str, operation: str, distance: int | None) -> float:
        if distance is None:
            return self.unreachable_score
        tier_weight = self.tier_weights.get(tier, self.tier_weights["public"])
        op_weight = self.operation_weights.get(operation, self.operation_weights.get("unknown", 1.0))
        return round(tier_weight * op_weight / (1 + self.distance_penalty * distance), 4)

    def severity(self, risk: float, reachable: bool = True) -> str:
        if not reachable:
            return SEVERITY_BANDS[-1]
        for band in SEVERITY_BANDS[:-1]:
            if risk >= self.thresholds.get(band, float("inf")):
                return band
        return SEVERITY_BANDS[-1]

    def prioritize(self, graph: CallGraph, access_map: DataAccessMap,
                   entry_points: list[str] | None = None) -> PrioritizedScanResult:
        """Rank every graph-attributable access point of ``access_map``.

        ``entry_points`` defaults to the graph's own entry points.

        Raises:
            UnknownNodeError: if an explicit entry point id was never registered
        """
        if entry_points is None:
            entries = set(graph.entry_points)
        else:
            entries = {e for e in entry_points if graph.require_known(e)}

        attributed: list[tuple[DataAccessPoint, str]] = []
        unattributed: list[DataAccessPoint] = []
        for point in access_map.access_points:
            node_id = point.function_id
            if node_id is None or node_id not in graph.nodes:
                node = graph.function_at(point.file, point.line)
                node_id = node.id if node else None
            if node_id is None:
                unattributed.append(point)
            else:
                attributed.append((point, node_id))

        function_weight = self._function_weights(attributed, access_map)

        def edge_weight(edge: CallEdge) -> float:
            return function_weight.get(edge.target_id or "", 0.0)

        ranked = []
        for point, node_id in attributed:
            touched = access_map.touched_fields(point)
            tier = max_tier(sf.tier for sf in touched)
            hit = graph.reachability.distance_from_entry_points(node_id, entries)
            distance, entry = hit if hit else (None, None)
            risk = self.score(tier, point.operation, distance)

            category, regulations = None, set()
            for sf in sorted(touched, key=lambda s: (-tier_rank(s.tier), s.field)):
                classified = classify_name(sf.field)
                if classified:
                    category = category or classified[0]
                    regulations.update(classified[1])

            exposure = []
            if entry == node_id:
                exposure = [node_id]
            elif entry is not None:
                path = graph.path_finder.critical_path(entry, node_id, edge_weight, max_paths=self.max_paths)
                exposure = path.nodes if path else []

            ranked.append(PrioritizedAccessPoint(
                access_point=point,
                function_id=node_id,
                tier=tier,
                risk_score=risk,
                severity=self.severity(risk, distance is not None),
                distance=distance,
                entry_point=entry,
                category=category,
                regulations=sorted(regulations),
                exposure_path=exposure,
                rationale=self._rationale(point, tier, distance, entry),
            ))

        ranked.sort(key=lambda p: (-p.risk_score, p.access_point.file, p.access_point.line,
                                   p.access_point.column, p.access_point.table))
        summary = self.summarize(ranked, unattributed)
        logger.info(
            f"[PRIORITY] Ranked {len(ranked)} access points "
            f"({summary.by_severity['critical']} critical, {summary.unreachable} unreachable, "
            f"{len(unattributed)} unattributed)"
        )
        return PrioritizedScanResult(access_points=ranked, summary=summary, unattributed=unattributed)

    def _function_weights(self, attributed: list[tuple[DataAccessPoint, str]],
                          access_map: DataAccessMap) -> dict[str, float]:
        """Tier weight of the most sensitive data each function touches."""
        tiers: dict[str, list[str]] = {}
        for point, node_id in attributed:
            tiers.setdefault(node_id, []).append(access_map.point_tier(point))
        return {node_id: self.tier_weights.get(max_tier(ts), 0.0) for node_id, ts in tiers.items()}

    @staticmethod
    def _rationale(point: DataAccessPoint, tier: str, distance: int | None, entry: str | None) -> str:
        if distance is None:
            return f"{tier} {point.operation} on {point.table}, unreachable from any entry point"
        if distance == 0:
            return f"{tier} {point.operation} on {point.table} directly inside entry point {entry}"
        hops = "call" if distance == 1 else "calls"
        return f"{tier} {point.operation} on {point.table}, {distance} {hops} from entry point {entry}"

    @staticmethod
    def summarize(ranked: list[PrioritizedAccessPoint], unattributed: list[DataAccessPoint]) -> SecuritySummary:
        summary = SecuritySummary(total_access_points=len(ranked), unattributed=len(unattributed))
        regulations = set()
        for item in ranked:
            summary.by_severity[item.severity] += 1
            summary.by_tier[item.tier] = summary.by_tier.get(item.tier, 0) + 1
            if item.category:
                summary.by_category[item.category] = summary.by_category.get(item.category, 0) + 1
            if item.reachable:
                summary.reachable += 1
            else:
                summary.unreachable += 1
            regulations.update(item.regulations)
        summary.by_category = dict(sorted(summary.by_category.items()))
        summary.regulations = sorted(regulations)
        return summary
