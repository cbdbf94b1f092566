"""
Neighbors From Scratch - 근접 탐색 직접 구현
============================================

거리 함수만으로 동작하는 정확한 근접 탐색 인덱스를 직접 구현합니다.
NumPy/SciPy 로 벡터를 다루고, 알고리즘은 모두 이 패키지 안에 있습니다.

구현된 구성 요소:
- DistanceMetric: 교체 가능한 거리 함수 (가속 캐시, 학습형 거리 포함)
- VectorArray: 전수 조사 기반 기준 컬렉션
- BallTree: 볼 트리 (일괄/병렬 구축, 점진적 삽입, 가지치기 탐색)
- collection_utils: 다중 질의 도구
- NeighborsVisualizer: 트리 구조 및 탐색 결과 시각화

Author: Neighbors From Scratch Project
"""

from .vectors import DimensionMismatchError
from .distance_metrics import (
    DistanceMetric,
    UntrainedMetricError,
    EuclideanDistance,
    CosineDistance,
    ManhattanDistance,
    ChebyshevDistance,
    MinkowskiDistance,
    WeightedEuclideanDistance,
    NormalizedEuclideanDistance,
    MahalanobisDistance
)
from .search import Neighbor, SearchStats, TraversalState, BoundedMaxHeap
from .vector_collection import VectorCollection, VectorArray
from .ball_tree import (
    BallTree,
    BallNode,
    PivotSelection,
    ConstructionMethod,
    BallCenter
)
from .collection_utils import (
    all_nearest_neighbors,
    all_radius_neighbors,
    kth_neighbor_stats
)
from .visualizer import NeighborsVisualizer

__all__ = [
    'DistanceMetric',
    'EuclideanDistance',
    'CosineDistance',
    'ManhattanDistance',
    'ChebyshevDistance',
    'MinkowskiDistance',
    'WeightedEuclideanDistance',
    'NormalizedEuclideanDistance',
    'MahalanobisDistance',
    'DimensionMismatchError',
    'UntrainedMetricError',
    'Neighbor',
    'SearchStats',
    'TraversalState',
    'BoundedMaxHeap',
    'VectorCollection',
    'VectorArray',
    'BallTree',
    'BallNode',
    'PivotSelection',
    'ConstructionMethod',
    'BallCenter',
    'all_nearest_neighbors',
    'all_radius_neighbors',
    'kth_neighbor_stats',
    'NeighborsVisualizer'
]

__version__ = '1.0.0'
