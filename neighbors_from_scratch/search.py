"""
Branch-and-Bound Search - 볼 트리 탐색/가지치기
================================================

일괄 구축 트리와 점진적 삽입 트리가 공통으로 사용하는 탐색 로직.

수학적 배경:
-----------
노드 (피벗 p, 반지름 r) 의 모든 점 x 는 d(p, x) ≤ r 를 만족한다.
삼각 부등식에 의해 질의 q 에 대해

    d(q, x) ≥ d(q, p) - d(p, x) ≥ d(q, p) - r

따라서 d(q, p) - r > threshold 이면 해당 노드(와 모든 하위 노드)에는
조건을 만족하는 점이 없다.

부동소수점에서는 삼각 부등식이 반올림 오차만큼 어긋날 수 있으므로
경계값 threshold 에 PRUNE_TOL · (1 + d(q, p)) 의 여유를 더해 판단한다.
여유는 방문 노드만 늘릴 뿐 결과는 바꾸지 않는다 (리프에서 d ≤ threshold
를 다시 확인).

- 범위 탐색: threshold = 질의 반경
- k-NN 탐색: threshold = 현재까지의 k번째 최근접 거리
  (후보가 k개 모이기 전에는 가지치기 불가)

탐색 상태:
---------
DESCEND   → 내부 노드의 두 자식을 방문
PRUNE     → 하위 트리 전체를 건너뜀
LEAF_SCAN → 리프의 모든 점과 거리를 계산해 후보로 제출

Author: Neighbors From Scratch Project
"""

import heapq
from dataclasses import dataclass
from enum import Enum
from typing import Any, List, NamedTuple, Optional, Sequence, Tuple

from .acceleration import query_cache


# 가지치기 판단의 반올림 여유 (상대값)
PRUNE_TOL = 1e-7


class Neighbor(NamedTuple):
    """탐색 결과: (삽입 인덱스, 거리)"""
    index: int
    distance: float


def neighbor_order(n: Neighbor) -> Tuple[float, int]:
    """결과 정렬 키: 거리 오름차순, 같은 거리면 인덱스 오름차순"""
    return (n.distance, n.index)


def validate_search_args(k: Any, radius: Any) -> Tuple[Optional[int], Optional[float]]:
    """
    search(query, k) / search(query, radius=r) 인자 검증

    k 와 radius 중 정확히 하나만 지정해야 한다.
    """
    if (k is None) == (radius is None):
        raise ValueError("k와 radius 중 정확히 하나만 지정해야 합니다.")

    if k is not None:
        if isinstance(k, bool) or not float(k).is_integer():
            raise ValueError(f"k는 정수여야 합니다: {k!r}")
        k = int(k)
        if k < 0:
            raise ValueError(f"k는 0 이상이어야 합니다: {k}")
        return k, None

    radius = float(radius)
    if not radius >= 0:
        raise ValueError(f"radius는 0 이상이어야 합니다: {radius}")
    return None, radius


class TraversalState(Enum):
    """노드 하나를 처리할 때의 탐색 상태"""
    DESCEND = "descend"
    PRUNE = "prune"
    LEAF_SCAN = "leaf_scan"


@dataclass
class SearchStats:
    """탐색 한 번의 상태 전이 및 거리 계산 횟수"""
    n_descend: int = 0
    n_prune: int = 0
    n_leaf_scan: int = 0
    n_distance_evals: int = 0

    def record(self, state: TraversalState) -> None:
        if state is TraversalState.DESCEND:
            self.n_descend += 1
        elif state is TraversalState.PRUNE:
            self.n_prune += 1
        else:
            self.n_leaf_scan += 1

    @property
    def n_nodes_visited(self) -> int:
        return self.n_descend + self.n_prune + self.n_leaf_scan


@dataclass(frozen=True)
class SearchContext:
    """탐색에 필요한 공유 읽기 전용 상태"""
    metric: Any
    vectors: Sequence
    cache: Optional[list]


class BoundedMaxHeap:
    """
    크기 제한 최대 힙 (k-NN 후보 유지)

    (거리, 인덱스) 순서로 가장 나쁜 후보가 맨 위에 있어, 더 좋은 후보가 오면
    O(log k) 에 교체한다.

    Parameters
    ----------
    capacity : int
        유지할 후보 수 k
    """

    def __init__(self, capacity: int):
        if capacity < 0:
            raise ValueError(f"capacity는 0 이상이어야 합니다: {capacity}")
        self.capacity = capacity
        self._heap: List[Tuple[float, int]] = []  # (-거리, -인덱스)

    def __len__(self) -> int:
        return len(self._heap)

    def is_full(self) -> bool:
        return len(self._heap) >= self.capacity

    def worst_distance(self) -> float:
        """k번째 거리. 아직 가득 차지 않았으면 무한대"""
        if not self.is_full() or self.capacity == 0:
            return float('inf')
        return -self._heap[0][0]

    def push(self, index: int, distance: float) -> bool:
        """후보 제출. 유지되면 True"""
        if self.capacity == 0:
            return False
        item = (-distance, -index)
        if len(self._heap) < self.capacity:
            heapq.heappush(self._heap, item)
            return True
        # 힙 최상단이 가장 나쁜 후보
        if item > self._heap[0]:
            heapq.heapreplace(self._heap, item)
            return True
        return False

    def to_sorted_list(self) -> List[Neighbor]:
        result = [Neighbor(-neg_idx, -neg_dist) for neg_dist, neg_idx in self._heap]
        result.sort(key=neighbor_order)
        return result


def can_prune(pivot_dist: float, radius: float, threshold: float) -> bool:
    """d(q, p) - r 이 threshold 를 반올림 여유 이상으로 넘는지"""
    return pivot_dist - radius > threshold + PRUNE_TOL * (1.0 + pivot_dist)


def _pivot_distance(node, query, q_cache, ctx: SearchContext) -> float:
    # 반지름과 같은 공식으로 계산: 질의를 원소 1개짜리 컬렉션으로 취급
    return ctx.metric.dist_query(0, node.pivot, node.pivot_info, [query], q_cache)


def range_search(
    root,
    query,
    radius: float,
    ctx: SearchContext,
    stats: Optional[SearchStats] = None
) -> List[Neighbor]:
    """
    범위 탐색: d(query, x) ≤ radius 인 모든 점

    Returns
    -------
    neighbors : list of Neighbor
        거리 오름차순 (같은 거리는 인덱스 오름차순)
    """
    if root is None:
        return []

    metric = ctx.metric
    qi = metric.get_query_info(query)
    q_cache = query_cache(metric, query, qi)

    found: List[Neighbor] = []
    stack = [root]
    while stack:
        node = stack.pop()
        pivot_dist = _pivot_distance(node, query, q_cache, ctx)
        if stats is not None:
            stats.n_distance_evals += 1

        if can_prune(pivot_dist, node.radius, radius):
            if stats is not None:
                stats.record(TraversalState.PRUNE)
            continue

        if node.is_leaf():
            if stats is not None:
                stats.record(TraversalState.LEAF_SCAN)
                stats.n_distance_evals += len(node.indices)
            for i in node.indices:
                d = metric.dist_query(i, query, qi, ctx.vectors, ctx.cache)
                if d <= radius:
                    found.append(Neighbor(i, d))
        else:
            if stats is not None:
                stats.record(TraversalState.DESCEND)
            stack.append(node.right)
            stack.append(node.left)

    found.sort(key=neighbor_order)
    return found


def knn_search(
    root,
    query,
    k: int,
    ctx: SearchContext,
    stats: Optional[SearchStats] = None
) -> List[Neighbor]:
    """
    k-최근접 이웃 탐색

    피벗이 더 가까운 자식을 먼저 방문해 k번째 거리 상한을 빨리 줄인다.

    Returns
    -------
    neighbors : list of Neighbor
        최대 k개, 거리 오름차순 (같은 거리는 인덱스 오름차순)
    """
    if root is None or k == 0:
        return []

    metric = ctx.metric
    qi = metric.get_query_info(query)
    q_cache = query_cache(metric, query, qi)

    knn = BoundedMaxHeap(k)
    stack = [(root, _pivot_distance(root, query, q_cache, ctx))]
    if stats is not None:
        stats.n_distance_evals += 1

    while stack:
        node, pivot_dist = stack.pop()

        # 후보가 k개 미만이면 worst_distance() 가 무한대라 가지치기 불가
        if can_prune(pivot_dist, node.radius, knn.worst_distance()):
            if stats is not None:
                stats.record(TraversalState.PRUNE)
            continue

        if node.is_leaf():
            if stats is not None:
                stats.record(TraversalState.LEAF_SCAN)
                stats.n_distance_evals += len(node.indices)
            for i in node.indices:
                knn.push(i, metric.dist_query(i, query, qi, ctx.vectors, ctx.cache))
            continue

        if stats is not None:
            stats.record(TraversalState.DESCEND)
            stats.n_distance_evals += 2
        dist_left = _pivot_distance(node.left, query, q_cache, ctx)
        dist_right = _pivot_distance(node.right, query, q_cache, ctx)

        # 스택이므로 먼 자식을 먼저 넣어 가까운 자식이 먼저 처리되도록 함
        if dist_right < dist_left:
            stack.append((node.left, dist_left))
            stack.append((node.right, dist_right))
        else:
            stack.append((node.right, dist_right))
            stack.append((node.left, dist_left))

    return knn.to_sorted_list()
