"""
Ball Tree - From Scratch Implementation
=======================================

거리 함수만으로 동작하는 계층적 공간 인덱스. 정확한 범위 탐색과 k-NN 탐색,
일괄(병렬) 구축, 점 하나씩의 점진적 삽입을 지원한다.

수학적 배경:
-----------
각 노드는 볼(ball) B(p, r) 을 나타낸다.

    p : 피벗 (centroid 또는 데이터 중 하나)
    r = max_{x ∈ subtree} d(p, x)

불변식: 하위 트리의 모든 점 x 에 대해 d(p, x) ≤ r.
이 불변식과 삼각 부등식으로 탐색 시 하위 트리를 통째로 건너뛸 수 있다.

구축 (top-down):
---------------
1. 점 수 ≤ leaf_size 이면 리프
2. PivotSelection 으로 분할 시드 s1, s2 선택
   - FURTHEST_PAIR: s1 = 중심에서 가장 먼 점, s2 = s1 에서 가장 먼 점
   - RANDOM: 서로 다른 임의의 두 점
3. ConstructionMethod 로 점 분할
   - NEAREST_PIVOT: 더 가까운 시드 쪽으로 배정
   - MEDIAN_BALANCED: d(x, s1) - d(x, s2) 순으로 정렬 후 중앙값에서 절반씩
   - KD_STYLE: 분산 폭이 가장 큰 차원의 중앙값으로 분할 (시드 미사용)
4. 두 부분 집합에 대해 재귀

구축 (middle-out, ANCHORS_HIERARCHY):
-----------------------------------
1. √n 개의 앵커를 차례로 추가한다. 새 앵커는 반지름이 가장 큰 앵커가
   소유한 점 중 가장 먼 점이고, 기존 앵커들의 점 중 자신에게 더 가까운
   점을 가져온다 (d(x, a_j) < d(a_j, a_new) / 2 이면 더 볼 필요 없음).
2. 앵커마다 소유한 점들로 하위 트리를 재귀 구축
3. 합쳤을 때 볼이 가장 작은 두 그룹부터 차례로 병합해 위쪽 노드를 만듦

점진적 삽입:
-----------
루트에서 피벗이 더 가까운 자식으로 내려가며 경로상 반지름을 갱신하고,
리프가 leaf_size 를 넘으면 그 리프의 점들만으로 하위 트리를 다시 구축한다.

Author: Neighbors From Scratch Project
"""

import copy
import heapq
import time
import warnings
from concurrent.futures import Future
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterator, List, NamedTuple, Optional, Sequence, Tuple

import numpy as np

from .acceleration import effective_n_jobs, shared_pool
from .distance_metrics import DistanceMetric, UntrainedMetricError
from .search import (
    Neighbor,
    SearchStats,
    knn_search,
    range_search,
    validate_search_args,
)
from .vector_collection import VectorCollection
from .vectors import (
    as_vector,
    as_vectors,
    check_lengths,
    is_sparse,
    mean_vector,
    stack_dense,
)


DEFAULT_LEAF_SIZE = 40

# 이보다 점이 많으면 메도이드를 후보 표본에서만 찾음
MEDOID_EXACT_LIMIT = 64
MEDOID_SAMPLE_SIZE = 32

# 병렬 구축 시 별도 작업으로 넘길 최소 하위 트리 크기
PARALLEL_MIN_SUBTREE = 64


class PivotSelection(Enum):
    """분할 시드 두 개를 고르는 방법"""
    FURTHEST_PAIR = "furthest_pair"
    RANDOM = "random"


class ConstructionMethod(Enum):
    """점들을 자식 노드로 나누는 방법"""
    NEAREST_PIVOT = "nearest_pivot"
    MEDIAN_BALANCED = "median_balanced"
    KD_STYLE = "kd_style"
    ANCHORS_HIERARCHY = "anchors_hierarchy"


class BallCenter(Enum):
    """노드 볼의 중심(피벗)을 정하는 방법"""
    CENTROID = "centroid"
    MEDOID = "medoid"
    RANDOM = "random"


def _coerce_enum(enum_cls, value, name: str):
    """Enum 멤버 또는 그 값/이름 문자열을 멤버로 변환"""
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        key = value.strip()
        for member in enum_cls:
            if key.lower() == member.value or key.upper() == member.name:
                return member
    options = ", ".join(m.name for m in enum_cls)
    raise ValueError(f"알 수 없는 {name}: {value!r} (가능한 값: {options})")


@dataclass
class BallNode:
    """볼 트리의 노드를 표현하는 클래스"""

    # 볼 정보
    pivot: Any = None                     # 볼 중심 벡터
    pivot_info: Optional[np.ndarray] = None  # 피벗의 가속 캐시값
    radius: float = 0.0                   # 피벗에서 하위 점까지의 최대 거리

    # 리프 노드 정보
    indices: Optional[List[int]] = None   # 리프가 직접 가진 벡터 인덱스

    # 자식 노드
    left: Optional['BallNode'] = None
    right: Optional['BallNode'] = None

    depth: int = 0

    def is_leaf(self) -> bool:
        """리프 노드인지 확인"""
        return self.left is None and self.right is None

    def iter_indices(self) -> Iterator[int]:
        """하위 트리의 모든 벡터 인덱스"""
        stack = [self]
        while stack:
            node = stack.pop()
            if node.is_leaf():
                yield from node.indices
            else:
                stack.append(node.right)
                stack.append(node.left)


class _AnchorBall(NamedTuple):
    """middle-out 병합 중의 그룹 (children 이 None 이면 앵커 하나의 점들)"""
    points: List[int]
    pivot: Any
    pivot_info: Optional[np.ndarray]
    radius: float
    group: int = -1
    children: Optional[Tuple['_AnchorBall', '_AnchorBall']] = None


def _copy_vector(v):
    if v is None:
        return None
    return v.copy()


def _clone_node(node: Optional[BallNode]) -> Optional[BallNode]:
    if node is None:
        return None
    return BallNode(
        pivot=_copy_vector(node.pivot),
        pivot_info=_copy_vector(node.pivot_info),
        radius=node.radius,
        indices=None if node.indices is None else list(node.indices),
        left=_clone_node(node.left),
        right=_clone_node(node.right),
        depth=node.depth
    )


class BallTree(VectorCollection):
    """
    Ball Tree 벡터 컬렉션 (From Scratch)

    Parameters
    ----------
    metric : DistanceMetric, default=None
        거리 함수. None이면 EuclideanDistance.
        가지치기가 삼각 부등식에 의존하므로 유효한 거리여야 정확하다.

    pivot_selection : PivotSelection or str, default=FURTHEST_PAIR
        분할 시드 선택 방법
        - FURTHEST_PAIR: 서로 멀리 떨어진 두 점
        - RANDOM: 임의의 두 점

    construction_method : ConstructionMethod or str, default=NEAREST_PIVOT
        점 분할 방법
        - NEAREST_PIVOT: 가까운 시드에 배정
        - MEDIAN_BALANCED: 시드 거리 차이의 중앙값으로 균등 분할
        - KD_STYLE: 폭이 가장 큰 차원의 중앙값으로 분할
        - ANCHORS_HIERARCHY: √n 개 앵커로 나눈 뒤 아래에서 위로 병합

    ball_center : BallCenter or str, default=CENTROID
        노드 피벗 계산 방법
        - CENTROID: 평균 벡터 (데이터에 없는 합성 벡터)
        - MEDOID: 거리 합이 최소인 데이터 점
        - RANDOM: 임의의 데이터 점

    leaf_size : int, default=40
        리프 노드가 가질 수 있는 최대 벡터 수 (≥ 1)

    parallel : bool, default=False
        일괄 구축 시 하위 트리를 공유 스레드 풀에서 병렬 구축할지 여부

    n_jobs : int, default=None
        병렬 워커 수. None 또는 -1 이면 논리 코어 수

    random_state : int, default=None
        랜덤 시드 (RANDOM 시드/중심 선택, 메도이드 표본 추출, 첫 앵커 선택용)

    verbose : int, default=0
        출력 수준

    Attributes
    ----------
    root_ : BallNode
        루트 노드 (빈 트리면 None)

    vectors_ : list
        인덱스 순서의 벡터 목록

    cache_ : list of ndarray or None
        거리 가속 캐시

    tree_stats_ : dict
        트리 통계 (깊이, 노드 수, 리프 수 등)

    build_history_ : list of dict
        구축/리프 분할 기록

    Examples
    --------
    >>> from neighbors_from_scratch import BallTree
    >>> import numpy as np
    >>> X = np.random.default_rng(0).random((250, 3))
    >>> tree = BallTree(leaf_size=10).build(X)
    >>> tree.search(X[7], 1)[0].index
    7
    """

    def __init__(
        self,
        metric: Optional[DistanceMetric] = None,
        pivot_selection: Any = PivotSelection.FURTHEST_PAIR,
        construction_method: Any = ConstructionMethod.NEAREST_PIVOT,
        ball_center: Any = BallCenter.CENTROID,
        leaf_size: int = DEFAULT_LEAF_SIZE,
        parallel: bool = False,
        n_jobs: Optional[int] = None,
        random_state: Optional[int] = None,
        verbose: int = 0
    ):
        super().__init__(metric)

        # 입력 검증 (작업 전에 실패)
        if isinstance(leaf_size, bool) or not isinstance(leaf_size, (int, np.integer)):
            raise ValueError(f"leaf_size는 정수여야 합니다: {leaf_size!r}")
        if leaf_size < 1:
            raise ValueError(f"leaf_size는 1 이상이어야 합니다: {leaf_size}")
        if n_jobs is not None:
            effective_n_jobs(n_jobs)

        self.pivot_selection = _coerce_enum(PivotSelection, pivot_selection, "pivot_selection")
        self.construction_method = _coerce_enum(
            ConstructionMethod, construction_method, "construction_method"
        )
        self.ball_center = _coerce_enum(BallCenter, ball_center, "ball_center")
        self.leaf_size = int(leaf_size)
        self.parallel = parallel
        self.n_jobs = n_jobs
        self.random_state = random_state
        self.verbose = verbose

        # 구축 후 설정되는 속성들
        self.root_: Optional[BallNode] = None
        self.tree_stats_: Dict = {}
        self.build_history_: List[Dict] = []
        self._rng = np.random.default_rng(random_state)

    # ------------------------------------------------------------------
    # 노드 구성 요소
    # ------------------------------------------------------------------
    def _dist_to(self, i: int, pivot, pivot_info) -> float:
        return self.metric.dist_query(i, pivot, pivot_info, self.vectors_, self.cache_)

    def _compute_center(
        self,
        points: Sequence[int],
        rng: np.random.Generator
    ) -> Tuple[Any, Optional[np.ndarray]]:
        """
        노드 피벗 계산

        CENTROID: p = (1/n) Σ x_i
        MEDOID:   p = argmin_{x_j} Σ_i d(x_j, x_i)
        RANDOM:   p = 임의의 x_j
        """
        if len(points) == 1:
            pivot = _copy_vector(self.vectors_[points[0]])
        elif self.ball_center is BallCenter.CENTROID:
            pivot = mean_vector(self.vectors_, points)
        elif self.ball_center is BallCenter.RANDOM:
            pivot = _copy_vector(self.vectors_[points[int(rng.integers(len(points)))]])
        else:
            pivot = _copy_vector(self.vectors_[self._medoid(points, rng)])
        return pivot, self.metric.get_query_info(pivot)

    def _medoid(self, points: Sequence[int], rng: np.random.Generator) -> int:
        """거리 합이 최소인 점 (점이 많으면 표본 후보 중에서)"""
        if len(points) <= MEDOID_EXACT_LIMIT:
            candidates = list(points)
        else:
            picked = rng.choice(len(points), MEDOID_SAMPLE_SIZE, replace=False)
            candidates = [points[j] for j in sorted(picked)]

        best_idx = candidates[0]
        best_cost = float('inf')
        for c in candidates:
            cost = 0.0
            for i in points:
                cost += self.metric.dist_indexed(c, i, self.vectors_, self.cache_)
                if cost >= best_cost:
                    break
            if cost < best_cost:
                best_cost = cost
                best_idx = c
        return best_idx

    def _radius(self, points: Sequence[int], pivot, pivot_info) -> float:
        radius = 0.0
        for i in points:
            radius = max(radius, self._dist_to(i, pivot, pivot_info))
        return radius

    def _select_seeds(
        self,
        points: Sequence[int],
        pivot,
        pivot_info,
        rng: np.random.Generator
    ) -> Tuple[int, int]:
        """분할 시드 두 개 선택"""
        if self.pivot_selection is PivotSelection.RANDOM:
            a, b = rng.choice(len(points), 2, replace=False)
            return points[a], points[b]

        # FURTHEST_PAIR: 중심에서 가장 먼 점, 그 점에서 가장 먼 점
        s1 = max(points, key=lambda i: self._dist_to(i, pivot, pivot_info))
        s2 = max(
            points,
            key=lambda i: self.metric.dist_indexed(i, s1, self.vectors_, self.cache_)
        )
        return s1, s2

    def _partition(
        self,
        points: Sequence[int],
        pivot,
        pivot_info,
        rng: np.random.Generator
    ) -> Optional[Tuple[List[int], List[int]]]:
        """
        점들을 두 그룹으로 분할

        Returns
        -------
        (left, right) 또는 분할이 불가능하면 None (모든 점이 겹치는 경우 등)
        """
        if self.construction_method is ConstructionMethod.KD_STYLE:
            return self._partition_kd(points)

        s1, s2 = self._select_seeds(points, pivot, pivot_info, rng)

        d1 = [self.metric.dist_indexed(p, s1, self.vectors_, self.cache_) for p in points]
        d2 = [self.metric.dist_indexed(p, s2, self.vectors_, self.cache_) for p in points]

        if self.construction_method is ConstructionMethod.NEAREST_PIVOT:
            left = [p for p, a, b in zip(points, d1, d2) if a < b]
            right = [p for p, a, b in zip(points, d1, d2) if not a < b]
        else:
            # MEDIAN_BALANCED: 두 시드 거리 차이 순으로 정렬해 절반씩
            order = sorted(
                range(len(points)),
                key=lambda j: (d1[j] - d2[j], points[j])
            )
            half = len(points) // 2
            left = [points[j] for j in order[:half]]
            right = [points[j] for j in order[half:]]

        if not left or not right:
            return None
        return left, right

    def _partition_kd(self, points: Sequence[int]) -> Optional[Tuple[List[int], List[int]]]:
        """폭이 가장 큰 차원을 중앙값에서 분할"""
        X = stack_dense(self.vectors_, points)
        spread = X.max(axis=0) - X.min(axis=0)
        dim = int(np.argmax(spread))
        if spread[dim] == 0:
            return None

        order = np.argsort(X[:, dim], kind='stable')
        values = X[order, dim]
        n = len(points)

        # 같은 값이 양쪽으로 갈라지지 않도록 중앙값 위치 조정
        mid = n // 2
        while mid > 0 and values[mid - 1] == values[mid]:
            mid -= 1
        if mid == 0:
            mid = n // 2
            while mid < n and values[mid - 1] == values[mid]:
                mid += 1

        left = [points[j] for j in order[:mid]]
        right = [points[j] for j in order[mid:]]
        return left, right

    def _grow_anchors(self, points: Sequence[int], rng: np.random.Generator) -> List[List[int]]:
        """
        √n 개의 앵커를 키우며 각 점을 가장 가까운 앵커에 배정

        Returns
        -------
        groups : list of list of int
            앵커별 소유 점 (첫 원소가 앵커, 나머지는 앵커와의 거리 순).
            모든 점이 자기 앵커와 겹치면 √n 개보다 적을 수 있다.
        """
        def dist(a, b):
            return self.metric.dist_indexed(a, b, self.vectors_, self.cache_)

        n_anchors = int(np.ceil(np.sqrt(len(points))))
        first = points[int(rng.integers(len(points)))]
        anchors = [first]
        # 앵커별 (거리, 점) 목록, 거리 오름차순
        owned = [sorted((dist(first, p), p) for p in points)]

        while len(anchors) < n_anchors:
            donor = max(range(len(anchors)), key=lambda j: owned[j][-1][0])
            if owned[donor][-1][0] == 0:
                break
            _, anchor = owned[donor].pop()

            stolen = [(0.0, anchor)]
            for j, a_j in enumerate(anchors):
                half_gap = dist(a_j, anchor) / 2
                members = owned[j]
                kept_tail = []
                for pos in range(len(members) - 1, -1, -1):
                    d_old, p = members[pos]
                    if d_old < half_gap:
                        # 나머지는 새 앵커보다 a_j 에 더 가까움
                        owned[j] = members[:pos + 1] + kept_tail[::-1]
                        break
                    d_new = dist(anchor, p)
                    if d_new < d_old:
                        stolen.append((d_new, p))
                    else:
                        kept_tail.append((d_old, p))
                else:
                    owned[j] = kept_tail[::-1]

            anchors.append(anchor)
            owned.append(sorted(stolen))

        return [
            [anchor] + [p for _, p in members if p != anchor]
            for anchor, members in zip(anchors, owned)
        ]

    def _merge_cost(self, a: _AnchorBall, b: _AnchorBall) -> float:
        """두 볼을 감싸는 볼의 반지름 상한"""
        gap = self.metric.dist(a.pivot, b.pivot)
        return max(a.radius, b.radius, (gap + a.radius + b.radius) / 2)

    def _build_anchors(
        self,
        points: List[int],
        pivot,
        pivot_info,
        radius: float,
        depth: int,
        rng: np.random.Generator,
        fork_depth: Optional[int]
    ) -> Optional[BallNode]:
        """
        middle-out 구축: 앵커 그룹을 아래에서 위로 병합

        병합 순서만 상한(_merge_cost)으로 정하고, 병합 노드의 피벗과 반지름은
        실제 점들로 다시 계산한다.

        Returns
        -------
        node : BallNode 또는 앵커가 하나뿐이면 None
        """
        groups = self._grow_anchors(points, rng)
        if len(groups) < 2:
            return None

        seeds = rng.integers(0, 2**31, size=len(groups))
        balls: Dict[int, _AnchorBall] = {}
        for g, members in enumerate(groups):
            g_pivot, g_info = self._compute_center(members, rng)
            balls[g] = _AnchorBall(members, g_pivot, g_info,
                                   self._radius(members, g_pivot, g_info), group=g)

        heap = []
        for a in balls:
            for b in balls:
                if a < b:
                    heap.append((self._merge_cost(balls[a], balls[b]), a, b))
        heapq.heapify(heap)

        # 마지막 두 그룹은 이 노드(points 전체)의 자식이 됨
        next_id = len(groups)
        while len(balls) > 2:
            _, a, b = heapq.heappop(heap)
            if a not in balls or b not in balls:
                continue
            left, right = balls.pop(a), balls.pop(b)
            members = left.points + right.points
            m_pivot, m_info = self._compute_center(members, rng)
            merged = _AnchorBall(members, m_pivot, m_info,
                                 self._radius(members, m_pivot, m_info),
                                 children=(left, right))
            for c, ball in balls.items():
                heapq.heappush(heap, (self._merge_cost(ball, merged), c, next_id))
            balls[next_id] = merged
            next_id += 1

        def materialize(ball: _AnchorBall, level: int):
            if ball.children is None:
                return self._build_node(ball.points, level, int(seeds[ball.group]), fork_depth)
            node = BallNode(pivot=ball.pivot, pivot_info=ball.pivot_info,
                            radius=ball.radius, depth=level)
            node.left = materialize(ball.children[0], level + 1)
            node.right = materialize(ball.children[1], level + 1)
            return node

        left, right = (balls[key] for key in sorted(balls))
        node = BallNode(pivot=pivot, pivot_info=pivot_info, radius=radius, depth=depth)
        node.left = materialize(left, depth + 1)
        node.right = materialize(right, depth + 1)
        return node

    # ------------------------------------------------------------------
    # 구축
    # ------------------------------------------------------------------
    def _make_leaf(self, points: List[int], pivot, pivot_info, radius: float, depth: int) -> BallNode:
        return BallNode(
            pivot=pivot,
            pivot_info=pivot_info,
            radius=radius,
            indices=list(points),
            depth=depth
        )

    def _build_node(
        self,
        points: List[int],
        depth: int,
        seed: int,
        fork_depth: Optional[int] = None
    ):
        """
        재귀적으로 하위 트리 구축

        종료 조건:
        1. 점 수 ≤ leaf_size
        2. 분할 불가 (모든 점이 동일 등)

        fork_depth 가 주어지면 그 깊이의 충분히 큰 하위 트리는 공유 풀에
        제출하고 Future 를 반환한다. 제출은 호출자 스레드에서만 일어난다.
        """
        if (
            fork_depth is not None and
            depth >= fork_depth and
            len(points) >= PARALLEL_MIN_SUBTREE
        ):
            return shared_pool().submit(self._build_node, points, depth, seed, None)

        rng = np.random.default_rng(seed)
        pivot, pivot_info = self._compute_center(points, rng)
        radius = self._radius(points, pivot, pivot_info)

        if len(points) <= self.leaf_size:
            return self._make_leaf(points, pivot, pivot_info, radius, depth)

        if self.construction_method is ConstructionMethod.ANCHORS_HIERARCHY:
            node = self._build_anchors(points, pivot, pivot_info, radius, depth, rng, fork_depth)
            if node is None:
                return self._make_leaf(points, pivot, pivot_info, radius, depth)
            return node

        split = self._partition(points, pivot, pivot_info, rng)
        if split is None:
            return self._make_leaf(points, pivot, pivot_info, radius, depth)
        left_points, right_points = split

        # 자식 시드를 미리 뽑아 병렬/순차 구축 결과를 동일하게 유지
        left_seed, right_seed = rng.integers(0, 2**31, size=2)

        node = BallNode(pivot=pivot, pivot_info=pivot_info, radius=radius, depth=depth)
        node.left = self._build_node(left_points, depth + 1, int(left_seed), fork_depth)
        node.right = self._build_node(right_points, depth + 1, int(right_seed), fork_depth)
        return node

    def _join(self, node):
        """Future 로 남은 하위 트리를 모두 기다려 채움 (워커 예외는 전파)"""
        if isinstance(node, Future):
            return node.result()
        if node.is_leaf():
            return node
        node.left = self._join(node.left)
        node.right = self._join(node.right)
        return node

    def build(
        self,
        vectors: Sequence,
        metric: Optional[DistanceMetric] = None,
        parallel: Optional[bool] = None
    ) -> 'BallTree':
        """
        벡터 목록으로 트리 일괄 구축

        Parameters
        ----------
        vectors : sequence or ndarray of shape (n_vectors, n_features)
            인덱싱할 벡터들 (밀집 또는 희소)
        metric : DistanceMetric, optional
            지정하면 기존 거리 함수를 교체
        parallel : bool, optional
            None이면 생성자의 parallel 값 사용

        Returns
        -------
        self : BallTree
        """
        if metric is not None:
            self.metric = metric
        if parallel is None:
            parallel = self.parallel

        vectors = as_vectors(vectors)
        for v in vectors[1:]:
            check_lengths(vectors[0], v)

        if not self.metric.is_valid_metric():
            warnings.warn(
                f"{self.metric!r}는 유효한 거리(metric)가 아니므로 "
                "가지치기 결과가 정확하지 않을 수 있습니다.",
                UserWarning
            )

        start = time.perf_counter()
        self.vectors_ = vectors
        self._rng = np.random.default_rng(self.random_state)
        self._prepare_metric(self.vectors_, parallel)

        if self.verbose > 0:
            print(f"Ball Tree 구축 시작: {len(vectors)}개 벡터, leaf_size={self.leaf_size}")

        if not vectors:
            self.root_ = None
        else:
            seed = int(self._rng.integers(0, 2**31))
            points = list(range(len(vectors)))
            fork_depth = None
            if parallel:
                n_workers = effective_n_jobs(self.n_jobs)
                if n_workers > 1:
                    # 워커당 두 개 이상의 하위 트리가 생기는 깊이
                    fork_depth = max(1, int(np.ceil(np.log2(n_workers))) + 1)
            self.root_ = self._join(self._build_node(points, 0, seed, fork_depth))

        self.tree_stats_ = self._calculate_tree_stats()
        elapsed = time.perf_counter() - start

        self.build_history_.append({
            'action': 'build',
            'n_vectors': len(vectors),
            'parallel': bool(parallel),
            'max_depth': self.tree_stats_['max_depth'],
            'n_leaves': self.tree_stats_['n_leaves'],
            'seconds': elapsed
        })

        if self.verbose > 0:
            print(
                f"Ball Tree 구축 완료: 깊이 {self.tree_stats_['max_depth']}, "
                f"리프 {self.tree_stats_['n_leaves']}개 ({elapsed:.3f}초)"
            )

        return self

    def insert(self, vector) -> int:
        """
        벡터 하나를 점진적으로 삽입하고 부여된 인덱스 반환

        트리를 다시 만들지 않고, 피벗이 더 가까운 자식으로 내려가며 경로의
        반지름을 갱신한다. 도착한 리프가 leaf_size 를 넘으면 그 리프만
        다시 분할한다.

        동시 삽입/탐색에 대한 내부 잠금은 없다 (단일 작성자 전제).
        """
        x = as_vector(vector)
        if self.metric.needs_training():
            raise UntrainedMetricError(
                f"{self.metric!r}는 학습이 필요합니다. "
                "학습된 거리 함수를 쓰거나 build()로 먼저 구축하세요."
            )
        if self.vectors_:
            check_lengths(self.vectors_[0], x)

        info = self.metric.get_query_info(x)
        index = len(self.vectors_)
        self.vectors_.append(x)
        if self.metric.supports_acceleration():
            if self.cache_ is None:
                self.cache_ = []
            self.cache_.append(info)
        else:
            self.cache_ = None

        if self.root_ is None:
            self.root_ = self._make_leaf([index], _copy_vector(x), info, 0.0, 0)
            return index

        parent: Optional[BallNode] = None
        node = self.root_
        dist_to_node = self._dist_to(index, node.pivot, node.pivot_info)

        while True:
            node.radius = max(node.radius, dist_to_node)

            if node.is_leaf():
                node.indices.append(index)
                if len(node.indices) > self.leaf_size:
                    self._split_leaf(parent, node)
                return index

            left_dist = self._dist_to(index, node.left.pivot, node.left.pivot_info)
            right_dist = self._dist_to(index, node.right.pivot, node.right.pivot_info)

            parent = node
            if left_dist < right_dist:
                node, dist_to_node = node.left, left_dist
            else:
                node, dist_to_node = node.right, right_dist

    def _split_leaf(self, parent: Optional[BallNode], leaf: BallNode) -> None:
        """넘친 리프를 그 점들만으로 다시 구축해 교체"""
        seed = int(self._rng.integers(0, 2**31))
        new_node = self._build_node(list(leaf.indices), leaf.depth, seed)

        if parent is None:
            self.root_ = new_node
        elif parent.left is leaf:
            parent.left = new_node
        else:
            parent.right = new_node

        # 겹치는 점뿐이라 리프로 남은 경우는 기록하지 않음
        if new_node.is_leaf():
            return
        self.build_history_.append({
            'action': 'split_leaf',
            'n_points': len(leaf.indices),
            'depth': leaf.depth
        })

    # ------------------------------------------------------------------
    # 탐색
    # ------------------------------------------------------------------
    def search(
        self,
        query,
        k: Optional[int] = None,
        radius: Optional[float] = None,
        stats: Optional[SearchStats] = None
    ) -> List[Neighbor]:
        """
        정확한 근접 탐색

        Parameters
        ----------
        query : array-like
            질의 벡터
        k : int, optional
            최근접 이웃 수 (컬렉션보다 크면 전체 반환)
        radius : float, optional
            탐색 반경
        stats : SearchStats, optional
            주어지면 탐색 상태 전이 횟수를 기록

        Returns
        -------
        neighbors : list of Neighbor
            (index, distance), 거리 오름차순 (같은 거리는 인덱스 오름차순)
        """
        k, radius = validate_search_args(k, radius)
        if self.root_ is None or k == 0:
            return []

        query = as_vector(query)
        ctx = self._search_context()
        if radius is not None:
            return range_search(self.root_, query, radius, ctx, stats)
        return knn_search(self.root_, query, k, ctx, stats)

    # ------------------------------------------------------------------
    # 복사 / 조회
    # ------------------------------------------------------------------
    def clone(self) -> 'BallTree':
        """
        독립적인 깊은 복사본

        노드(피벗, 반지름, 리프 인덱스), 가속 캐시, 거리 함수 상태를 모두
        복사한다. 벡터 객체 자체는 불변으로 보고 목록만 복사한다.
        """
        other = BallTree.__new__(BallTree)
        other.__dict__.update(self.__dict__)

        other.metric = self.metric.clone()
        other.vectors_ = list(self.vectors_)
        other.cache_ = None if self.cache_ is None else [info.copy() for info in self.cache_]
        other.root_ = _clone_node(self.root_)
        other.tree_stats_ = dict(self.tree_stats_)
        other.build_history_ = [dict(h) for h in self.build_history_]
        other._rng = copy.deepcopy(self._rng)
        return other

    def iter_nodes(self) -> Iterator[BallNode]:
        """전위 순회로 모든 노드 반환"""
        if self.root_ is None:
            return
        stack = [self.root_]
        while stack:
            node = stack.pop()
            yield node
            if not node.is_leaf():
                stack.append(node.right)
                stack.append(node.left)

    def _calculate_tree_stats(self) -> Dict:
        """트리 통계 계산"""
        stats = {
            'max_depth': 0,
            'n_nodes': 0,
            'n_leaves': 0,
            'n_internal': 0,
            'avg_leaf_depth': 0,
            'leaf_depths': [],
            'leaf_sizes': []
        }

        for node in self.iter_nodes():
            stats['n_nodes'] += 1
            stats['max_depth'] = max(stats['max_depth'], node.depth)
            if node.is_leaf():
                stats['n_leaves'] += 1
                stats['leaf_depths'].append(node.depth)
                stats['leaf_sizes'].append(len(node.indices))
            else:
                stats['n_internal'] += 1

        if stats['n_leaves'] > 0:
            stats['avg_leaf_depth'] = float(np.mean(stats['leaf_depths']))

        return stats

    def get_tree_stats(self) -> Dict:
        """현재 트리 기준으로 통계를 다시 계산해 반환"""
        self.tree_stats_ = self._calculate_tree_stats()
        return self.tree_stats_

    def get_depth(self) -> int:
        """트리의 최대 깊이 반환"""
        if self.root_ is None:
            return 0
        return self.get_tree_stats()['max_depth']

    def get_n_leaves(self) -> int:
        """리프 노드 수 반환"""
        if self.root_ is None:
            return 0
        return self.get_tree_stats()['n_leaves']

    def export_tree_structure(self) -> Dict:
        """
        트리 구조를 딕셔너리로 내보내기 (시각화용)
        """
        def _node_to_dict(node: BallNode) -> Dict:
            pivot = node.pivot.toarray().ravel() if is_sparse(node.pivot) else node.pivot
            result = {
                'pivot': np.asarray(pivot).tolist(),
                'radius': node.radius,
                'depth': node.depth,
                'is_leaf': node.is_leaf()
            }

            if node.is_leaf():
                result['indices'] = list(node.indices)
            else:
                result['left'] = _node_to_dict(node.left)
                result['right'] = _node_to_dict(node.right)

            return result

        if self.root_ is None:
            return {}

        return _node_to_dict(self.root_)

    def __repr__(self) -> str:
        if self.root_ is None:
            return f"BallTree(empty, leaf_size={self.leaf_size})"

        return (
            f"BallTree("
            f"n_vectors={self.size()}, "
            f"depth={self.get_depth()}, "
            f"n_leaves={self.get_n_leaves()}, "
            f"leaf_size={self.leaf_size})"
        )
