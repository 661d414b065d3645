# tablecat/perception/frame_gate.py
"""Frame signatures, difference metrics and ROI proposals.

A frame is reduced to a grayscale plane plus an 8x8 grid of average luma.
The grid doubles as a coarse average-hash (one bit per cell) and as the
heatmap from which regions of interest are proposed.
"""
import math
from typing import List, Optional
import numpy as np
from .types import GRID_SIZE, FrameSnapshot, ROIProposal, Rect

ROI_PADDING_RATIO = 0.12
MAX_ROI_BOXES = 3
MAX_COVERAGE_RATIO = 0.35
TOP_CELLS = 3

def clamp01(value: float) -> float:
    return max(0.0, min(1.0, float(value)))

def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))

def _grid_axis(size: int) -> np.ndarray:
    return np.minimum(GRID_SIZE - 1, (np.arange(size) * GRID_SIZE) // size)

def build_frame_snapshot(pixels, width: int, height: int) -> FrameSnapshot:
    rgb = np.asarray(pixels)
    if rgb.ndim != 3 or rgb.shape[0] != height or rgb.shape[1] != width or rgb.shape[2] < 3:
        raise ValueError(f"Expected ({height}, {width}, 3+) pixels, got {rgb.shape}")
    rgb = rgb[..., :3].astype(np.float64)
    luma = rgb[..., 0] * 0.299 + rgb[..., 1] * 0.587 + rgb[..., 2] * 0.114
    grayscale = np.clip(np.floor(luma + 0.5), 0, 255).astype(np.uint8)

    cells = (_grid_axis(height)[:, None] * GRID_SIZE + _grid_axis(width)[None, :]).ravel()
    sums = np.bincount(cells, weights=grayscale.ravel().astype(np.float64), minlength=GRID_SIZE * GRID_SIZE)
    counts = np.bincount(cells, minlength=GRID_SIZE * GRID_SIZE)
    energy = np.divide(sums, counts, out=np.zeros_like(sums), where=counts > 0)

    grayscale.setflags(write=False)
    return FrameSnapshot(
        width=width,
        height=height,
        grayscale=grayscale,
        grid_energy=tuple(float(v) for v in energy),
        signature_bits=_average_hash_bits(energy),
    )

def _average_hash_bits(energy: np.ndarray) -> str:
    mean = energy.mean()
    return "".join("1" if v >= mean else "0" for v in energy)

def compute_visual_delta(previous: Optional[FrameSnapshot], current: FrameSnapshot) -> float:
    if previous is None:
        return 0.0
    diff = np.abs(current.grayscale.astype(np.int16) - previous.grayscale.astype(np.int16))
    return float(diff.mean() / 255)

def hamming_distance(left: str, right: str) -> int:
    longest = max(len(left), len(right))
    return sum(1 for i in range(longest) if (left[i] if i < len(left) else "") != (right[i] if i < len(right) else ""))

def compute_hash_distance(previous: Optional[FrameSnapshot], current: FrameSnapshot) -> int:
    if previous is None:
        return 0
    return hamming_distance(previous.signature_bits, current.signature_bits)

def _diff_grid(previous: Optional[FrameSnapshot], current: FrameSnapshot) -> np.ndarray:
    if previous is None:
        return np.zeros(GRID_SIZE * GRID_SIZE)
    return np.abs(np.asarray(current.grid_energy) - np.asarray(previous.grid_energy))

def compute_cluster_score(previous: Optional[FrameSnapshot], current: FrameSnapshot) -> float:
    diff = _diff_grid(previous, current)
    total = diff.sum()
    if total <= 0:
        return 0.0
    top = np.sort(diff)[::-1][:TOP_CELLS].sum()
    return clamp01(top / total)

def build_roi_proposal(previous: Optional[FrameSnapshot], current: FrameSnapshot, full_width: int, full_height: int) -> ROIProposal:
    diff = _diff_grid(previous, current)
    total = float(diff.sum())
    if total <= 0:
        return ROIProposal()

    # stable sort keeps lower cell indices first on ties
    ranked = [int(i) for i in np.argsort(-diff, kind="stable") if diff[i] > 0][:MAX_ROI_BOXES]
    boxes = merge_boxes([_grid_cell_box(i, full_width, full_height) for i in ranked])
    coverage = clamp01(sum(b.area for b in boxes) / (full_width * full_height))
    heatmap = clamp01(total / diff.size / 255)
    if coverage > MAX_COVERAGE_RATIO:
        return ROIProposal(boxes=(), coverage_ratio=coverage, heatmap_score=heatmap)
    return ROIProposal(boxes=tuple(boxes), coverage_ratio=coverage, heatmap_score=heatmap)

def _grid_cell_box(index: int, full_width: int, full_height: int) -> Rect:
    cell_w, cell_h = full_width / GRID_SIZE, full_height / GRID_SIZE
    gx, gy = index % GRID_SIZE, index // GRID_SIZE
    raw = Rect(math.floor(gx * cell_w), math.floor(gy * cell_h), math.ceil(cell_w), math.ceil(cell_h))
    return pad_box(raw, full_width, full_height)

def pad_box(box: Rect, full_width: int, full_height: int, ratio: float = ROI_PADDING_RATIO) -> Rect:
    pad_x, pad_y = _round_half_up(box.width * ratio), _round_half_up(box.height * ratio)
    x, y = max(0, box.x - pad_x), max(0, box.y - pad_y)
    right, bottom = min(full_width, box.right + pad_x), min(full_height, box.bottom + pad_y)
    return Rect(x, y, right - x, bottom - y)

def boxes_touch_or_overlap(a: Rect, b: Rect) -> bool:
    return not (a.right < b.x - 1 or b.right < a.x - 1 or a.bottom < b.y - 1 or b.bottom < a.y - 1)

def union_box(a: Rect, b: Rect) -> Rect:
    x, y = min(a.x, b.x), min(a.y, b.y)
    return Rect(x, y, max(a.right, b.right) - x, max(a.bottom, b.bottom) - y)

def merge_boxes(boxes: List[Rect]) -> List[Rect]:
    merged: List[Rect] = []
    for box in boxes:
        hit = next((i for i, m in enumerate(merged) if boxes_touch_or_overlap(m, box)), None)
        if hit is None:
            merged.append(box)
        else:
            merged[hit] = union_box(merged[hit], box)
    return merged[:MAX_ROI_BOXES]
