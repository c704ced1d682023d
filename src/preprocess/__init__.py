"""
Preprocess 模块 - 网络输入构建

职责：
- 保持长宽比缩放、方形 padding
- 减均值、HWC(BGR) -> CHW(RGB)、组 batch
- GT mask 的同步缩放
"""

from .resize import resize_image, resize_masks
from .molder import InputMolder, image_to_tensor, mold_image, mold_inputs

__all__ = [
    "InputMolder",
    "resize_image",
    "resize_masks",
    "mold_image",
    "image_to_tensor",
    "mold_inputs"
]
