"""
Resize - 保持长宽比的缩放与方形 padding

核心功能：
- resize_image: 按 min_dim / max_dim 缩放，可选 padding 到 max_dim x max_dim
- resize_masks: 按同样的 scale / padding 处理 GT mask
"""

import math

import cv2
import numpy as np

from ..context import Padding, ResizeResult, Window


def round_half_up(value: float) -> int:
    """四舍五入（.5 远离 0），与 Python 内置 round 的银行家舍入不同"""
    if value < 0:
        return -int(math.floor(-value + 0.5))
    return int(math.floor(value + 0.5))


def _target_size(height: int, width: int, scale: float) -> tuple[int, int]:
    """缩放后的 (width, height)，每边至少 1 像素"""
    return (
        max(1, round_half_up(width * scale)),
        max(1, round_half_up(height * scale))
    )


def compute_scale(height: int, width: int, min_dim: int, max_dim: int) -> float:
    """
    计算缩放比例
    
    Args:
        height: 原图高
        width: 原图宽
        min_dim: 短边下限，0 表示不限制
        max_dim: 长边上限，0 表示不限制
    
    Returns:
        scale
    """
    scale = 1.0
    
    # 只放大不缩小
    if min_dim:
        scale = max(1.0, min_dim / min(height, width))
    
    # 长边超过 max_dim 时重新计算
    if max_dim:
        image_max = max(height, width)
        if round_half_up(image_max * scale) > max_dim:
            scale = max_dim / image_max
    
    return scale


def resize_image(
    image: np.ndarray,
    min_dim: int = 0,
    max_dim: int = 0,
    do_padding: bool = False
) -> ResizeResult:
    """
    缩放图像并保持长宽比
    
    Args:
        image: 输入图像 (H,W,C)
        min_dim: 短边下限，0 表示不限制
        max_dim: 长边上限，0 表示不限制
        do_padding: 是否 padding 到 max_dim x max_dim
    
    Returns:
        ResizeResult(image, window, scale, padding)
    
    Raises:
        ValueError: do_padding 但 max_dim 为 0
    """
    if do_padding and not max_dim:
        raise ValueError("padding 需要设置 max_dim")
    
    h, w = image.shape[:2]
    scale = compute_scale(h, w, min_dim, max_dim)
    
    if scale != 1.0:
        resized = cv2.resize(
            image,
            _target_size(h, w, scale),  # cv2.resize 使用 (width, height)
            interpolation=cv2.INTER_LINEAR
        )
    else:
        resized = image.copy()
    
    h, w = resized.shape[:2]
    if not do_padding:
        return ResizeResult(
            image=resized,
            window=Window(0, 0, h, w),
            scale=scale,
            padding=Padding()
        )
    
    # 居中：上/左取一半（向下取整），下/右补足余数
    top_pad = (max_dim - h) // 2
    bottom_pad = max_dim - h - top_pad
    left_pad = (max_dim - w) // 2
    right_pad = max_dim - w - left_pad
    
    padded = cv2.copyMakeBorder(
        resized, top_pad, bottom_pad, left_pad, right_pad,
        cv2.BORDER_CONSTANT, value=0
    )
    
    return ResizeResult(
        image=padded,
        window=Window(top_pad, left_pad, h + top_pad, w + left_pad),
        scale=scale,
        padding=Padding(top_pad, bottom_pad, left_pad, right_pad)
    )


def resize_masks(
    masks: list[np.ndarray],
    scale: float,
    padding: Padding
) -> list[np.ndarray]:
    """
    按 resize_image 的 scale / padding 处理一组 mask
    
    Args:
        masks: (H,W) mask 列表，bool 会按 uint8 处理
        scale: 缩放比例
        padding: 四边 padding
    
    Returns:
        处理后的 mask 列表，顺序不变
    """
    resized_masks = []
    for mask in masks:
        if mask.dtype == np.bool_:
            mask = mask.astype(np.uint8)
        
        h, w = mask.shape[:2]
        m = cv2.resize(
            mask,
            _target_size(h, w, scale),
            interpolation=cv2.INTER_LINEAR
        )
        (top, bottom), (left, right) = padding.as_pad_width()
        m = cv2.copyMakeBorder(
            m, top, bottom, left, right,
            cv2.BORDER_CONSTANT, value=0
        )
        resized_masks.append(m)
    
    return resized_masks
