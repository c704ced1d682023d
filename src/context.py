"""
Context - 几何与数据结构

贯穿 mold / unmold 流程的值类型。
"""

from dataclasses import dataclass, field

import numpy as np
import torch


@dataclass(frozen=True)
class Window:
    """处理后图像中真实内容所在的矩形 (y1, x1, y2, x2)，其余为 padding"""
    
    y1: int
    x1: int
    y2: int
    x2: int
    
    def __post_init__(self):
        if self.y2 < self.y1 or self.x2 < self.x1:
            raise ValueError(
                f"Window 坐标非法: ({self.y1}, {self.x1}, {self.y2}, {self.x2})"
            )
    
    @property
    def height(self) -> int:
        return self.y2 - self.y1
    
    @property
    def width(self) -> int:
        return self.x2 - self.x1
    
    def as_tuple(self) -> tuple[int, int, int, int]:
        return (self.y1, self.x1, self.y2, self.x2)


@dataclass(frozen=True)
class Padding:
    """四边 padding 像素数"""
    
    top: int = 0
    bottom: int = 0
    left: int = 0
    right: int = 0
    
    def as_pad_width(self) -> tuple[tuple[int, int], tuple[int, int]]:
        """((top, bottom), (left, right))，与 np.pad 的 pad_width 一致"""
        return ((self.top, self.bottom), (self.left, self.right))


@dataclass
class ImageMeta:
    """单张图像的元信息"""
    
    original_size: tuple[int, int]     # (H_orig, W_orig)
    window: Window                     # resize 后真实内容区域
    active_class_ids: np.ndarray       # int32 (num_classes,) 全零占位
    image_id: int = 0                  # 保留位，固定为 0
    
    def to_array(self) -> np.ndarray:
        """
        展平为一行 float32
        
        Returns:
            [image_id, h, w, y1, x1, y2, x2, *active_class_ids]
        """
        h, w = self.original_size
        return np.array(
            [self.image_id, h, w, *self.window.as_tuple(), *self.active_class_ids],
            dtype=np.float32
        )


@dataclass
class ResizeResult:
    """resize_image 输出"""
    
    image: np.ndarray      # resize（及 padding）后的图像
    window: Window
    scale: float
    padding: Padding = field(default_factory=Padding)


@dataclass
class MoldedInputs:
    """批量 mold 输出，网络的输入"""
    
    images: torch.Tensor               # float32 (N,3,H,W)
    image_metas: list[ImageMeta]
    windows: list[Window]
    
    def __len__(self) -> int:
        return len(self.image_metas)


@dataclass
class DetectionResult:
    """单张图像的 unmold 输出，坐标在原图空间"""
    
    boxes: np.ndarray          # int32 (N,4) y1, x1, y2, x2
    class_ids: np.ndarray      # int64 (N,)
    scores: np.ndarray         # float32 (N,)
    masks: list[np.ndarray]    # N 个 uint8 (H,W)，取值 {0,255}
    
    def __len__(self) -> int:
        return len(self.class_ids)
    
    @classmethod
    def empty(cls) -> "DetectionResult":
        """没有任何检测时的结果"""
        return cls(
            boxes=np.zeros((0, 4), dtype=np.int32),
            class_ids=np.zeros((0,), dtype=np.int64),
            scores=np.zeros((0,), dtype=np.float32),
            masks=[]
        )
