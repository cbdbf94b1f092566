"""
Vector Collection - 기준 구현 및 탐색 도구 검증 테스트
======================================================

테스트 항목:
1. VectorArray 전수 조사 결과 (정렬, 동점 처리, 빈 컬렉션)
2. 크기 제한 최대 힙
3. 탐색 인자 검증, 가지치기 경계
4. 다중 질의 도구 (순차/병렬 동일성, k번째 이웃 통계)

Author: Neighbors From Scratch Project
"""

import numpy as np
import pytest

from neighbors_from_scratch import (
    BallTree,
    BoundedMaxHeap,
    DimensionMismatchError,
    ManhattanDistance,
    MahalanobisDistance,
    Neighbor,
    UntrainedMetricError,
    VectorArray,
    all_nearest_neighbors,
    all_radius_neighbors,
    kth_neighbor_stats,
)
from neighbors_from_scratch.search import PRUNE_TOL, can_prune, validate_search_args


def test_vector_array_basic():
    """전수 조사 결과는 (거리, 인덱스) 오름차순"""
    print("="*50)
    print("Test: VectorArray Basic")
    print("="*50)

    X = np.array([[0.0, 0.0], [1.0, 0.0], [3.0, 0.0], [0.0, 1.0]])
    col = VectorArray(vectors=X)

    assert len(col) == col.size() == 4
    assert np.array_equal(col.get(2), X[2])

    result = col.search([1.0, 0.0], 2)
    assert result == [Neighbor(1, 0.0), Neighbor(0, 1.0)]

    # 동점(거리 1)은 인덱스 순
    result = col.search([0.0, 0.0], 3)
    assert [n.index for n in result] == [0, 1, 3]
    assert result[1].distance == pytest.approx(1.0)

    within = col.search([0.0, 0.0], radius=1.0)
    assert [n.index for n in within] == [0, 1, 3]
    print("  ✓ 정렬 및 동점 처리 확인")


def test_vector_array_insert():
    col = VectorArray()
    assert col.search([0.0], 3) == []
    assert col.search([0.0], radius=1.0) == []

    for value in (5.0, 1.0, 3.0):
        col.insert([value])
    assert col.add([2.0]) == 3
    assert len(col.get_acceleration_cache()) == 4

    result = col.search([2.1], 2)
    assert [n.index for n in result] == [3, 2]

    with pytest.raises(DimensionMismatchError):
        col.insert([1.0, 2.0])


def test_vector_array_k_larger_than_size():
    X = np.random.default_rng(0).random((6, 3))
    col = VectorArray(vectors=X)
    result = col.search(X[0], 50)
    assert len(result) == 6
    assert result[0] == Neighbor(0, 0.0)
    assert col.search(X[0], 0) == []


def test_vector_array_trainable_metric():
    """학습형 거리 함수는 구축 시 학습, 학습 전 삽입은 오류"""
    rng = np.random.default_rng(1)
    X = rng.normal(size=(40, 3))

    col = VectorArray(metric=MahalanobisDistance())
    with pytest.raises(UntrainedMetricError):
        col.insert(X[0])

    col.build(X)
    assert not col.get_distance_metric().needs_training()
    assert col.get_acceleration_cache() is None
    assert col.search(X[5], 1)[0].index == 5


def test_vector_array_clone():
    X = np.random.default_rng(2).random((20, 2))
    col = VectorArray(metric=ManhattanDistance(), vectors=X)
    copy = col.clone()

    copy.insert([0.5, 0.5])
    assert col.size() == 20
    assert copy.size() == 21
    assert copy.metric is not col.metric
    assert "n_vectors=20" in repr(col)


def test_bounded_max_heap():
    """최대 k개 유지, 가장 나쁜 후보 교체"""
    heap = BoundedMaxHeap(3)
    assert heap.worst_distance() == float('inf')

    for index, distance in [(0, 5.0), (1, 1.0), (2, 3.0)]:
        assert heap.push(index, distance)
    assert heap.is_full()
    assert heap.worst_distance() == 5.0

    assert heap.push(3, 2.0)
    assert not heap.push(4, 9.0)
    # 같은 거리면 인덱스가 작은 쪽이 우선
    assert not heap.push(5, 3.0)
    assert heap.to_sorted_list()[:2] == [Neighbor(1, 1.0), Neighbor(3, 2.0)]

    ties = BoundedMaxHeap(2)
    for index in (4, 2, 9, 1):
        ties.push(index, 1.0)
    assert ties.to_sorted_list() == [Neighbor(1, 1.0), Neighbor(2, 1.0)]

    empty = BoundedMaxHeap(0)
    assert not empty.push(0, 0.0)
    assert empty.to_sorted_list() == []

    with pytest.raises(ValueError):
        BoundedMaxHeap(-1)


def test_validate_search_args():
    assert validate_search_args(3, None) == (3, None)
    assert validate_search_args(np.int64(4), None) == (4, None)
    assert validate_search_args(None, 0) == (None, 0.0)

    for k, radius in [(None, None), (1, 1.0), (-1, None), (True, None),
                      (1.5, None), (None, -2.0), (None, float('nan'))]:
        with pytest.raises(ValueError):
            validate_search_args(k, radius)


def test_can_prune_keeps_rounding_margin():
    """하한이 경계값을 반올림 오차 수준으로만 넘으면 가지치기하지 않음"""
    assert can_prune(2.0, 0.5, 1.0)
    assert not can_prune(1.5, 0.5, 1.0)

    # 경계값을 1e-12 만큼 넘는 것은 반올림 오차로 취급
    assert not can_prune(1.5 + 1e-12, 0.5, 1.0)
    assert not can_prune(1e5 + 1e-6, 1e5, 0.0)
    assert can_prune(1.5 + 10 * PRUNE_TOL * 2.5, 0.5, 1.0)

    # k개가 모이기 전 (경계값 무한대) 에는 가지치기 불가
    assert not can_prune(1e300, 0.0, float('inf'))


def test_all_neighbors_parallel_matches_serial():
    """병렬 다중 질의 결과가 순차 결과와 동일하고 질의 순서 유지"""
    print("\n" + "="*50)
    print("Test: Batch Queries (serial vs parallel)")
    print("="*50)

    rng = np.random.default_rng(4)
    X = rng.random((300, 3))
    queries = rng.random((37, 3))
    tree = BallTree(leaf_size=10).build(X)

    expected = [tree.search(q, 4) for q in queries]
    assert all_nearest_neighbors(tree, queries, 4) == expected
    assert all_nearest_neighbors(tree, queries, 4, parallel=True, n_jobs=3) == expected

    expected_radius = [tree.search(q, radius=0.1) for q in queries]
    assert all_radius_neighbors(tree, queries, 0.1) == expected_radius
    assert all_radius_neighbors(tree, queries, 0.1, parallel=True, n_jobs=4) == expected_radius
    print("  ✓ 병렬/순차 결과 동일")


def test_kth_neighbor_stats():
    X = np.random.default_rng(6).random((100, 2))
    col = VectorArray(vectors=X)

    # 자기 자신이 첫 번째 이웃
    stats = kth_neighbor_stats(col, X, 1)
    assert stats['n'] == 100
    assert stats['mean'] == 0.0
    assert stats['max'] == 0.0

    stats = kth_neighbor_stats(col, X[:10], 2, parallel=True, n_jobs=2)
    expected = [col.search(x, 2)[1].distance for x in X[:10]]
    assert stats['n'] == 10
    assert stats['mean'] == pytest.approx(np.mean(expected))
    assert stats['min'] == pytest.approx(min(expected))

    # 이웃이 k개 미만이면 제외
    small = VectorArray(vectors=X[:3])
    stats = kth_neighbor_stats(small, X[:5], 4)
    assert stats['n'] == 0
    assert np.isnan(stats['mean'])

    with pytest.raises(ValueError):
        kth_neighbor_stats(col, X, 0)
