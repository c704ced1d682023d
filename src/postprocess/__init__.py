"""
Postprocess 模块 - 网络输出还原

职责：
- 检测框从模型坐标映射回原图坐标
- 过滤零面积框
- 低分辨率 mask 还原为原图尺寸二值 mask
"""

from .unmolder import (
    DetectionUnmolder,
    count_detections,
    unmold_detections,
    unmold_mask
)

__all__ = [
    "DetectionUnmolder",
    "count_detections",
    "unmold_detections",
    "unmold_mask"
]
