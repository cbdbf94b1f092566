"""
Vector Collection - 벡터 컬렉션
===============================

인덱스가 부여된 벡터 집합에 대해 범위 탐색과 k-NN 탐색을 제공하는 공통
인터페이스와, 전수 조사(linear scan) 기반의 기준 구현 VectorArray.

VectorArray 는 인덱스 구조(Ball Tree 등)의 정답 검증용이며, 인덱스 구축
비용이 아까운 작은 데이터셋에도 쓸 수 있다.

정렬 규칙:
---------
결과는 (거리, 인덱스) 오름차순. 같은 거리는 먼저 삽입된 벡터가 앞선다.

Author: Neighbors From Scratch Project
"""

from typing import List, Optional, Sequence

from .distance_metrics import DistanceMetric, EuclideanDistance, UntrainedMetricError
from .search import (
    BoundedMaxHeap,
    Neighbor,
    SearchContext,
    neighbor_order,
    validate_search_args,
)
from .vectors import as_vector, as_vectors, check_lengths


class VectorCollection:
    """
    벡터 컬렉션 기본 클래스

    하위 클래스는 build, search, insert, clone 을 구현한다.
    """

    def __init__(self, metric: Optional[DistanceMetric] = None):
        self.metric = metric if metric is not None else EuclideanDistance()
        self.vectors_: List = []
        self.cache_: Optional[list] = None

    def build(
        self,
        vectors: Sequence,
        metric: Optional[DistanceMetric] = None,
        parallel: bool = False
    ) -> 'VectorCollection':
        raise NotImplementedError

    def search(self, query, k: Optional[int] = None, radius: Optional[float] = None) -> List[Neighbor]:
        """
        근접 탐색

        Parameters
        ----------
        query : array-like
            질의 벡터
        k : int, optional
            최근접 이웃 수
        radius : float, optional
            탐색 반경 (거리 ≤ radius)

        Returns
        -------
        neighbors : list of Neighbor
            (index, distance) 쌍, 거리 오름차순
        """
        raise NotImplementedError

    def insert(self, vector) -> int:
        raise NotImplementedError

    def clone(self) -> 'VectorCollection':
        raise NotImplementedError

    def get(self, index: int):
        return self.vectors_[index]

    def size(self) -> int:
        return len(self.vectors_)

    def __len__(self) -> int:
        return self.size()

    def get_distance_metric(self) -> DistanceMetric:
        return self.metric

    def get_acceleration_cache(self) -> Optional[list]:
        return self.cache_

    def _prepare_metric(self, vectors: List, parallel: bool) -> None:
        """학습이 필요하면 학습하고 가속 캐시를 구성"""
        if vectors and self.metric.needs_training():
            self.metric.train(vectors, parallel=parallel)

        if not self.metric.supports_acceleration():
            self.cache_ = None
        elif not vectors:
            self.cache_ = []
        else:
            self.cache_ = self.metric.get_acceleration_cache(vectors, parallel=parallel)

    def _search_context(self) -> SearchContext:
        return SearchContext(self.metric, self.vectors_, self.cache_)


class VectorArray(VectorCollection):
    """
    전수 조사 기반 벡터 컬렉션 (기준 구현)

    Parameters
    ----------
    metric : DistanceMetric, default=None
        거리 함수. None이면 EuclideanDistance

    vectors : sequence, optional
        초기 벡터 목록

    parallel : bool, default=False
        가속 캐시를 병렬로 구성할지 여부

    Examples
    --------
    >>> import numpy as np
    >>> from neighbors_from_scratch import VectorArray
    >>> X = np.array([[0.0, 0.0], [1.0, 0.0], [3.0, 0.0]])
    >>> col = VectorArray(vectors=X)
    >>> col.search([1.0, 0.0], 2)
    [Neighbor(index=1, distance=0.0), Neighbor(index=0, distance=1.0)]
    """

    def __init__(
        self,
        metric: Optional[DistanceMetric] = None,
        vectors: Optional[Sequence] = None,
        parallel: bool = False
    ):
        super().__init__(metric)
        self.build(vectors, parallel=parallel)

    def build(
        self,
        vectors: Optional[Sequence],
        metric: Optional[DistanceMetric] = None,
        parallel: bool = False
    ) -> 'VectorArray':
        if metric is not None:
            self.metric = metric
        self.vectors_ = as_vectors(vectors)
        for v in self.vectors_[1:]:
            check_lengths(self.vectors_[0], v)
        self._prepare_metric(self.vectors_, parallel)
        return self

    def insert(self, vector) -> int:
        """벡터 추가 후 부여된 인덱스 반환"""
        x = as_vector(vector)
        if self.vectors_:
            check_lengths(self.vectors_[0], x)
        if self.metric.needs_training():
            raise UntrainedMetricError(
                f"{self.metric!r}는 학습이 필요합니다. 학습된 거리 함수로 삽입하세요."
            )
        info = self.metric.get_query_info(x)

        self.vectors_.append(x)
        if self.cache_ is not None:
            self.cache_.append(info)
        return len(self.vectors_) - 1

    def add(self, vector) -> int:
        return self.insert(vector)

    def search(self, query, k: Optional[int] = None, radius: Optional[float] = None) -> List[Neighbor]:
        k, radius = validate_search_args(k, radius)
        if not self.vectors_ or k == 0:
            return []

        query = as_vector(query)
        ctx = self._search_context()
        qi = self.metric.get_query_info(query)

        if radius is not None:
            found = []
            for i in range(len(self.vectors_)):
                d = self.metric.dist_query(i, query, qi, ctx.vectors, ctx.cache)
                if d <= radius:
                    found.append(Neighbor(i, d))
            found.sort(key=neighbor_order)
            return found

        knn = BoundedMaxHeap(k)
        for i in range(len(self.vectors_)):
            knn.push(i, self.metric.dist_query(i, query, qi, ctx.vectors, ctx.cache))
        return knn.to_sorted_list()

    def clone(self) -> 'VectorArray':
        other = VectorArray.__new__(VectorArray)
        other.metric = self.metric.clone()
        other.vectors_ = list(self.vectors_)
        other.cache_ = None if self.cache_ is None else [info.copy() for info in self.cache_]
        return other

    def __repr__(self) -> str:
        return f"VectorArray(n_vectors={self.size()}, metric={self.metric!r})"
