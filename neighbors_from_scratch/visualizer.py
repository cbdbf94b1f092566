"""
Neighbors Visualizer - 근접 탐색 시각화 도구
============================================

Ball Tree 의 구조와 탐색 결과를 시각화합니다.

주요 기능:
- 깊이별 볼(ball) 영역 표시
- 질의와 탐색된 이웃 표시
- 리프 크기 / 깊이 분포

2차원 그림은 고른 두 차원으로 투영한 것이므로, 고차원 데이터에서는 볼이
점을 완전히 감싸지 않는 것처럼 보일 수 있다.

Author: Neighbors From Scratch Project
"""

import numpy as np
import matplotlib.pyplot as plt
import matplotlib.patches as mpatches
from typing import Optional, List, Tuple

from .vectors import to_dense


class NeighborsVisualizer:
    """
    근접 탐색 시각화 클래스

    Parameters
    ----------
    figsize : tuple, default=(10, 8)
        기본 Figure 크기

    style : str, optional
        Matplotlib 스타일

    dpi : int, default=100
        Figure DPI
    """

    def __init__(
        self,
        figsize: Tuple[int, int] = (10, 8),
        style: Optional[str] = None,
        dpi: int = 100
    ):
        self.figsize = figsize
        self.style = style
        self.dpi = dpi

        # 스타일 설정
        if self.style:
            try:
                plt.style.use(self.style)
            except OSError:
                pass  # 스타일을 찾을 수 없으면 기본값 사용

        # 색상 팔레트
        self.colors = {
            'primary': '#2E86AB',
            'secondary': '#A23B72',
            'accent': '#F18F01',
            'success': '#C73E1D',
            'neutral': '#3B3B3B',
            'points': '#9E9E9E',
            'query': '#C73E1D',
            'neighbor': '#F18F01'
        }

    def _project(self, vectors: List, dims: Tuple[int, int]) -> np.ndarray:
        if not vectors:
            return np.empty((0, 2))
        X = np.vstack([to_dense(v) for v in vectors])
        return X[:, list(dims)]

    def plot_balls(
        self,
        tree,
        depth: Optional[int] = None,
        dims: Tuple[int, int] = (0, 1),
        figsize: Optional[Tuple[int, int]] = None,
        title: str = "Ball Tree Structure"
    ) -> plt.Figure:
        """
        볼 트리 노드 영역 시각화

        Parameters
        ----------
        tree : BallTree
            구축된 트리
        depth : int, optional
            이 깊이의 노드만 표시. None이면 모든 리프
        dims : tuple of int
            투영할 두 차원
        figsize : tuple, optional
            Figure 크기
        title : str
            그래프 제목

        Returns
        -------
        fig : matplotlib.Figure
        """
        if tree.root_ is None:
            raise ValueError("트리가 구축되지 않았습니다.")

        fig, ax = plt.subplots(figsize=figsize or self.figsize, dpi=self.dpi)

        points = self._project(tree.vectors_, dims)
        ax.scatter(points[:, 0], points[:, 1], s=8,
                   color=self.colors['points'], alpha=0.7, zorder=2)

        if depth is None:
            nodes = [n for n in tree.iter_nodes() if n.is_leaf()]
        else:
            nodes = [n for n in tree.iter_nodes() if n.depth == depth]

        cmap = plt.cm.viridis
        for i, node in enumerate(nodes):
            center = to_dense(node.pivot)[list(dims)]
            color = cmap(i / max(len(nodes) - 1, 1))
            circle = mpatches.Circle(
                (center[0], center[1]), node.radius,
                fill=False, edgecolor=color, linewidth=1.2, alpha=0.8
            )
            ax.add_patch(circle)
            ax.plot(center[0], center[1], '+', color=color, markersize=6)

        label = "leaves" if depth is None else f"depth {depth}"
        ax.set_title(f"{title} ({label}, {len(nodes)} balls)",
                     fontsize=14, fontweight='bold')
        ax.set_xlabel(f'x{dims[0]}', fontsize=11)
        ax.set_ylabel(f'x{dims[1]}', fontsize=11)
        ax.set_aspect('equal', adjustable='datalim')
        ax.grid(True, alpha=0.3)

        plt.tight_layout()
        return fig

    def plot_query(
        self,
        collection,
        query,
        neighbors: List,
        dims: Tuple[int, int] = (0, 1),
        figsize: Optional[Tuple[int, int]] = None,
        title: str = "Query Neighbors"
    ) -> plt.Figure:
        """
        질의 벡터와 탐색된 이웃 시각화

        Parameters
        ----------
        collection : VectorCollection
            탐색 대상 컬렉션
        query : array-like
            질의 벡터
        neighbors : list of Neighbor
            collection.search() 결과
        """
        fig, ax = plt.subplots(figsize=figsize or self.figsize, dpi=self.dpi)

        points = self._project(collection.vectors_, dims)
        if len(points):
            ax.scatter(points[:, 0], points[:, 1], s=8,
                       color=self.colors['points'], alpha=0.6, label='vectors')

        q = to_dense(query)[list(dims)]

        if neighbors:
            found = self._project([collection.get(n.index) for n in neighbors], dims)
            ax.scatter(found[:, 0], found[:, 1], s=40,
                       color=self.colors['neighbor'], edgecolor='black',
                       linewidth=0.5, label=f'neighbors ({len(neighbors)})', zorder=3)
            for x, y in found:
                ax.plot([q[0], x], [q[1], y], '-', color=self.colors['neighbor'],
                        linewidth=0.8, alpha=0.6)

            # 가장 먼 이웃까지의 거리 (투영 전 거리이므로 참고용)
            furthest = max(n.distance for n in neighbors)
            ax.add_patch(mpatches.Circle(
                (q[0], q[1]), furthest, fill=False, linestyle='--',
                edgecolor=self.colors['query'], alpha=0.5
            ))

        ax.scatter([q[0]], [q[1]], s=120, marker='*',
                   color=self.colors['query'], label='query', zorder=4)

        ax.set_title(title, fontsize=14, fontweight='bold')
        ax.set_xlabel(f'x{dims[0]}', fontsize=11)
        ax.set_ylabel(f'x{dims[1]}', fontsize=11)
        ax.set_aspect('equal', adjustable='datalim')
        ax.legend(loc='upper right', fontsize=9)
        ax.grid(True, alpha=0.3)

        plt.tight_layout()
        return fig

    def plot_tree_stats(
        self,
        tree,
        figsize: Optional[Tuple[int, int]] = None,
        title: str = "Ball Tree Statistics"
    ) -> plt.Figure:
        """리프 크기와 리프 깊이 분포"""
        if tree.root_ is None:
            raise ValueError("트리가 구축되지 않았습니다.")

        stats = tree.get_tree_stats()
        fig, axes = plt.subplots(1, 2, figsize=figsize or (14, 5), dpi=self.dpi)

        # 1. 리프 크기
        ax = axes[0]
        ax.hist(stats['leaf_sizes'], bins=20, color=self.colors['primary'],
                alpha=0.7, edgecolor='white')
        ax.axvline(x=tree.leaf_size, color=self.colors['success'], linestyle='--',
                   linewidth=1.5, label=f'leaf_size={tree.leaf_size}')
        ax.set_xlabel('Leaf Size', fontsize=11)
        ax.set_ylabel('Count', fontsize=11)
        ax.set_title('Leaf Sizes', fontsize=12, fontweight='bold')
        ax.legend(fontsize=9)
        ax.grid(True, alpha=0.3)

        # 2. 리프 깊이
        ax = axes[1]
        depths = np.asarray(stats['leaf_depths'])
        bins = np.arange(depths.min(), depths.max() + 2) - 0.5
        ax.hist(depths, bins=bins, color=self.colors['accent'],
                alpha=0.7, edgecolor='white')
        ax.axvline(x=stats['avg_leaf_depth'], color=self.colors['neutral'],
                   linestyle=':', linewidth=1.5,
                   label=f"mean={stats['avg_leaf_depth']:.2f}")
        ax.set_xlabel('Leaf Depth', fontsize=11)
        ax.set_ylabel('Count', fontsize=11)
        ax.set_title('Leaf Depths', fontsize=12, fontweight='bold')
        ax.legend(fontsize=9)
        ax.grid(True, alpha=0.3)

        fig.suptitle(title, fontsize=14, fontweight='bold')
        plt.tight_layout()
        return fig

    def save_figure(
        self,
        fig: plt.Figure,
        filepath: str,
        dpi: Optional[int] = None
    ):
        """Figure 저장"""
        fig.savefig(filepath, dpi=dpi or self.dpi, bbox_inches='tight',
                    facecolor='white', edgecolor='none')
        print(f"Figure saved: {filepath}")
