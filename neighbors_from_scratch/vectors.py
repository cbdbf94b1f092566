"""
Vector Helpers - 밀집/희소 벡터 공통 연산
=========================================

거리 함수와 트리 구축이 공통으로 사용하는 벡터 연산 모음.

벡터 표현:
---------
- 밀집(dense): 1차원 ``np.ndarray`` (float)
- 희소(sparse): 1×D ``scipy.sparse.csr_array`` (0이 아닌 값만 저장)

희소 벡터의 생략된 값은 모두 0으로 정의된다.

Author: Neighbors From Scratch Project
"""

import numpy as np
from scipy import sparse
from typing import Any, Optional, Sequence, Tuple


class DimensionMismatchError(ValueError):
    """길이가 다른 두 벡터를 비교하려 할 때 발생"""


def is_sparse(v: Any) -> bool:
    """희소 벡터인지 확인"""
    return sparse.issparse(v)


def as_vector(x: Any):
    """
    입력을 내부 벡터 표현으로 변환

    Parameters
    ----------
    x : array-like or scipy.sparse matrix
        변환할 벡터. 희소 행렬은 1행이어야 함.

    Returns
    -------
    v : ndarray of shape (n_features,) or csr_array of shape (1, n_features)
    """
    if sparse.issparse(x):
        v = sparse.csr_array(x, dtype=float)
        if v.ndim == 1:
            v = v.reshape((1, -1))
        if v.shape[0] != 1:
            raise ValueError(f"희소 벡터는 1행이어야 합니다: shape={v.shape}")
        v.sum_duplicates()
        return v

    v = np.asarray(x, dtype=float)
    if v.ndim == 2 and 1 in v.shape:
        v = v.ravel()
    if v.ndim != 1:
        raise ValueError(f"벡터는 1차원이어야 합니다: shape={v.shape}")
    return v


def as_vectors(xs: Any) -> list:
    """벡터 목록(또는 2차원 배열)을 내부 표현의 리스트로 변환"""
    if xs is None:
        return []
    if sparse.issparse(xs):
        xs = sparse.csr_array(xs, dtype=float)
        return [as_vector(xs[[i], :]) for i in range(xs.shape[0])]
    if isinstance(xs, np.ndarray):
        if xs.ndim == 1:
            return [as_vector(xs)] if xs.size else []
        return [as_vector(row) for row in xs]
    return [as_vector(x) for x in xs]


def length(v) -> int:
    """벡터 길이 (차원 수)"""
    return int(v.shape[-1])


def check_lengths(a, b) -> None:
    """두 벡터의 길이가 같은지 확인"""
    if length(a) != length(b):
        raise DimensionMismatchError(
            f"벡터 길이가 일치하지 않습니다: {length(a)} vs {length(b)}"
        )


def to_dense(v) -> np.ndarray:
    """밀집 1차원 배열로 변환"""
    if sparse.issparse(v):
        return v.toarray().ravel()
    return v


def dot(a, b) -> float:
    """
    내적 a·b

    인자 순서에 따라 합산 순서가 정해지므로, 같은 쌍은 항상 같은 순서로
    호출해야 비트 단위로 같은 결과를 얻는다.
    """
    check_lengths(a, b)
    if sparse.issparse(a):
        if sparse.issparse(b):
            return float(a.multiply(b).sum())
        return float(a.dot(b)[0])
    if sparse.issparse(b):
        return float(b.dot(a)[0])
    return float(np.dot(a, b))


def weighted_dot(w: np.ndarray, a, b) -> float:
    """가중 내적 Σ w_i a_i b_i"""
    check_lengths(a, b)
    if sparse.issparse(a) or sparse.issparse(b):
        if sparse.issparse(a):
            a, b = b, a
        # b는 희소
        idx = b.indices
        vals = b.data
        if sparse.issparse(a):
            a_vals = a.toarray().ravel()[idx]
        else:
            a_vals = a[idx]
        return float(np.sum(w[idx] * a_vals * vals))
    return float(np.dot(w * a, b))


def difference(a, b) -> Tuple[np.ndarray, Optional[np.ndarray]]:
    """
    a - b 의 (값, 인덱스) 반환

    밀집끼리는 전체 차이 벡터와 ``None`` 을, 희소끼리는 0이 아닌 차이 값과
    그 인덱스를 반환한다. 누락된 인덱스의 차이는 0이다.
    """
    check_lengths(a, b)
    if sparse.issparse(a) and sparse.issparse(b):
        diff = sparse.csr_array(a - b)
        return diff.data, diff.indices
    return to_dense(a) - to_dense(b), None


def mean_vector(vectors: Sequence, indices: Sequence[int]) -> np.ndarray:
    """주어진 인덱스 벡터들의 평균 (항상 밀집 벡터)"""
    total = np.zeros(length(vectors[indices[0]]))
    for i in indices:
        v = vectors[i]
        if sparse.issparse(v):
            total[v.indices] += v.data
        else:
            total += v
    return total / len(indices)


def stack_dense(vectors: Sequence, indices: Sequence[int]) -> np.ndarray:
    """인덱스 벡터들을 (n, d) 밀집 행렬로 쌓기"""
    return np.vstack([to_dense(vectors[i]) for i in indices])
