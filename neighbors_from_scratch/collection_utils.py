"""
Collection Utilities - 다중 질의 도구
=====================================

구축된 컬렉션에 여러 질의를 한꺼번에 던지는 함수들.

탐색은 읽기 전용이므로 같은 컬렉션에 대해 여러 스레드가 동시에 질의해도
안전하다. 병렬 모드에서는 질의 목록을 연속 블록으로 나눠 공유 스레드 풀에서
처리하고, 결과는 질의 순서대로 합친다.

Author: Neighbors From Scratch Project
"""

import numpy as np
from typing import Callable, Dict, List, Optional, Sequence

from .acceleration import block_ranges, effective_n_jobs, shared_pool
from .search import Neighbor
from .vectors import as_vectors


def _map_queries(
    fn: Callable,
    queries: List,
    parallel: bool,
    n_jobs: Optional[int]
) -> List:
    """질의별로 fn 을 적용 (병렬이면 블록 단위로 나눠 실행)"""
    n_workers = effective_n_jobs(n_jobs)
    if not parallel or n_workers == 1 or len(queries) < 2:
        return [fn(q) for q in queries]

    def _run_block(start: int, end: int) -> List:
        return [fn(queries[i]) for i in range(start, end)]

    pool = shared_pool()
    futures = [
        pool.submit(_run_block, start, end)
        for start, end in block_ranges(len(queries), n_workers)
    ]

    results: List = []
    for future in futures:
        results.extend(future.result())
    return results


def all_nearest_neighbors(
    collection,
    queries: Sequence,
    k: int,
    parallel: bool = False,
    n_jobs: Optional[int] = None
) -> List[List[Neighbor]]:
    """
    모든 질의의 k-최근접 이웃

    Returns
    -------
    results : list of list of Neighbor
        ``results[i]`` 는 ``collection.search(queries[i], k)``
    """
    return _map_queries(
        lambda q: collection.search(q, k),
        as_vectors(queries),
        parallel,
        n_jobs
    )


def all_radius_neighbors(
    collection,
    queries: Sequence,
    radius: float,
    parallel: bool = False,
    n_jobs: Optional[int] = None
) -> List[List[Neighbor]]:
    """모든 질의의 반경 내 이웃"""
    return _map_queries(
        lambda q: collection.search(q, radius=radius),
        as_vectors(queries),
        parallel,
        n_jobs
    )


def kth_neighbor_stats(
    collection,
    queries: Sequence,
    k: int,
    parallel: bool = False,
    n_jobs: Optional[int] = None
) -> Dict[str, float]:
    """
    k번째 최근접 이웃 거리의 통계

    밀도 추정의 대역폭 선택 등에 쓰인다. 이웃이 k개 미만인 질의는 제외한다.

    Returns
    -------
    stats : dict
        'n', 'mean', 'std', 'min', 'max'
    """
    if k < 1:
        raise ValueError(f"k는 1 이상이어야 합니다: {k}")

    def _kth_distance(q) -> Optional[float]:
        found = collection.search(q, k)
        if len(found) < k:
            return None
        return found[k - 1].distance

    values = [
        d for d in _map_queries(_kth_distance, as_vectors(queries), parallel, n_jobs)
        if d is not None
    ]

    if not values:
        return {'n': 0, 'mean': float('nan'), 'std': float('nan'),
                'min': float('nan'), 'max': float('nan')}

    values = np.asarray(values)
    return {
        'n': int(values.size),
        'mean': float(values.mean()),
        'std': float(values.std()),
        'min': float(values.min()),
        'max': float(values.max())
    }
