"""
DetectionUnmolder - 网络输出还原到原图空间

核心功能：
- count_detections: 在补零的 detections 中找到有效行数
- unmold_mask: 低分辨率 mask -> 原图尺寸二值 mask
- unmold_detections: 坐标映射、过滤零面积框、重建 mask
"""

import cv2
import numpy as np
import torch
from omegaconf import DictConfig

from ..context import DetectionResult, Window


def _to_numpy(array) -> np.ndarray:
    """torch tensor 或 array-like 统一转为 numpy"""
    if isinstance(array, torch.Tensor):
        return array.detach().cpu().numpy()
    return np.asarray(array)


def count_detections(detections) -> int:
    """
    有效检测数
    
    detections 为定长、补零的 (K,6) 数组，第一条 class_id == 0 的行之前为有效检测。
    
    Args:
        detections: (K,6) [y1, x1, y2, x2, class_id, score]
    
    Returns:
        有效行数 N，没有 0 时为 K
    """
    detections = _to_numpy(detections)
    zero_ix = np.where(detections[:, 4] == 0)[0]
    return int(zero_ix[0]) if zero_ix.size > 0 else detections.shape[0]


def unmold_mask(
    mask,
    box,
    image_size: tuple[int, int],
    threshold: float = 0.5
) -> np.ndarray:
    """
    将网络生成的小 mask 还原到原图尺寸
    
    Args:
        mask: float (mh,mw)，通常 28x28，取值 [0,1]
        box: [y1, x1, y2, x2]，原图坐标
        image_size: (H, W) 原图尺寸
        threshold: 二值化阈值
    
    Returns:
        uint8 (H,W)，框内 > threshold 的位置为 255，其余为 0
    
    Raises:
        ValueError: 框宽或高 <= 0
    """
    mask = _to_numpy(mask).astype(np.float32)
    y1, x1, y2, x2 = (int(v) for v in _to_numpy(box)[:4])
    box_h, box_w = y2 - y1, x2 - x1
    if box_h <= 0 or box_w <= 0:
        raise ValueError(f"框面积为 0，无法还原 mask: {(y1, x1, y2, x2)}")
    
    resized = cv2.resize(mask, (box_w, box_h), interpolation=cv2.INTER_LINEAR)
    _, binary = cv2.threshold(resized, threshold, 255, cv2.THRESH_BINARY)
    binary = binary.astype(np.uint8)
    
    full_h, full_w = image_size
    full_mask = np.zeros((full_h, full_w), dtype=np.uint8)
    
    # 超出图像边界的部分裁掉
    top, left = max(y1, 0), max(x1, 0)
    bottom, right = min(y2, full_h), min(x2, full_w)
    if bottom <= top or right <= left:
        return full_mask
    
    full_mask[top:bottom, left:right] = binary[top - y1:bottom - y1, left - x1:right - x1]
    return full_mask


def unmold_detections(
    detections,
    mrcnn_mask,
    image_size: tuple[int, int],
    window: Window,
    num_detections: int | None = None,
    mask_threshold: float = 0.5
) -> DetectionResult:
    """
    将单张图像的网络输出还原到原图空间
    
    Args:
        detections: (K,6) [y1, x1, y2, x2, class_id, score]，模型坐标
        mrcnn_mask: (K,mh,mw,num_classes) 每类一张低分辨率 mask
        image_size: (H, W) 原图尺寸
        window: 预处理时真实内容所在区域
        num_detections: 有效检测数；为 None 时按 class_id == 0 的补零约定计算
        mask_threshold: mask 二值化阈值
    
    Returns:
        DetectionResult，框坐标为 int32 原图坐标
    
    Raises:
        ValueError: num_detections 超出 [0, K]，或 Window 面积为 0
    """
    detections = _to_numpy(detections)
    mrcnn_mask = _to_numpy(mrcnn_mask)
    
    n = count_detections(detections) if num_detections is None else int(num_detections)
    if not 0 <= n <= detections.shape[0]:
        raise ValueError(
            f"有效检测数 {n} 超出范围 [0, {detections.shape[0]}]"
        )
    if n == 0:
        return DetectionResult.empty()
    
    boxes = detections[:n, :4].astype(np.float32)
    class_ids = detections[:n, 4].astype(np.int64)
    scores = detections[:n, 5].astype(np.float32)
    masks = mrcnn_mask[np.arange(n), :, :, class_ids]
    
    if window.height <= 0 or window.width <= 0:
        raise ValueError(f"Window 面积为 0: {window.as_tuple()}")
    
    # 统一 scale，避免非等比变形
    h, w = image_size
    scale = min(h / window.height, w / window.width)
    shifts = np.array([window.y1, window.x1, window.y1, window.x1], dtype=np.float32)
    
    # 向 0 截断
    boxes = ((boxes - shifts) * scale).astype(np.int32)
    
    # 过滤零面积框，常见于训练早期权重尚未收敛时
    include = (boxes[:, 2] > boxes[:, 0]) & (boxes[:, 3] > boxes[:, 1])
    if not np.any(include):
        return DetectionResult.empty()
    
    boxes = boxes[include]
    class_ids = class_ids[include]
    scores = scores[include]
    masks = masks[include]
    
    full_masks = [
        unmold_mask(masks[i], boxes[i], image_size, mask_threshold)
        for i in range(len(boxes))
    ]
    
    return DetectionResult(
        boxes=boxes,
        class_ids=class_ids,
        scores=scores,
        masks=full_masks
    )


class DetectionUnmolder:
    """按配置还原网络输出"""
    
    def __init__(self, cfg: DictConfig):
        """
        初始化
        
        Args:
            cfg: 配置对象，需包含 detection.mask_threshold
        """
        global_cfg = getattr(cfg, 'global')
        self.verbose = global_cfg.get("verbose", False)
        self.mask_threshold = cfg.detection.get("mask_threshold", 0.5)
    
    def unmold(
        self,
        detections,
        mrcnn_mask,
        image_size: tuple[int, int],
        window: Window,
        num_detections: int | None = None
    ) -> DetectionResult:
        """
        还原单张图像的检测结果
        
        Args:
            detections: (K,6) 网络输出
            mrcnn_mask: (K,mh,mw,num_classes) 网络输出
            image_size: (H, W) 原图尺寸
            window: 预处理时的 Window
            num_detections: 有效检测数，可选
        
        Returns:
            DetectionResult
        """
        result = unmold_detections(
            detections,
            mrcnn_mask,
            image_size,
            window,
            num_detections=num_detections,
            mask_threshold=self.mask_threshold
        )
        
        if self.verbose:
            print(f"[DetectionUnmolder] {len(result)} detection(s) kept for image {image_size}")
        
        return result
