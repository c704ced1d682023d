"""
InputMolder - 网络输入构建

核心功能：
- mold_image: 减去 mean pixel，输出 float32
- image_to_tensor: (H,W,3) BGR -> (3,H,W) RGB tensor
- InputMolder.mold_inputs: 批量 resize + mold + stack，生成 ImageMeta / Window
"""

from typing import Sequence

import numpy as np
import torch
from omegaconf import DictConfig

from ..context import ImageMeta, MoldedInputs, Window
from .resize import resize_image


def mold_image(image: np.ndarray, mean_pixel: Sequence[float]) -> np.ndarray:
    """
    减去 mean pixel 并转换为 float32
    
    mean_pixel 按 RGB 给出，图像为 BGR，所以倒序使用。
    
    Args:
        image: (H,W,3) 图像
        mean_pixel: RGB 三通道均值
    
    Returns:
        float32 (H,W,3)
    
    Raises:
        ValueError: 通道数不是 3
    """
    if image.ndim != 3 or image.shape[2] != 3:
        raise ValueError(f"输入图像必须是 (H,W,3) 格式，当前: {image.shape}")
    
    mean = np.asarray(mean_pixel, dtype=np.float32)[::-1]
    return image.astype(np.float32) - mean


def image_to_tensor(image: np.ndarray) -> torch.Tensor:
    """
    (H,W,3) BGR 图像转为网络需要的 (3,H,W) RGB tensor
    
    Args:
        image: float32 (H,W,3) BGR
    
    Returns:
        float32 tensor (3,H,W)，拥有独立内存
    """
    if image.ndim != 3 or image.shape[2] != 3:
        raise ValueError(f"输入图像必须是 (H,W,3) 格式，当前: {image.shape}")
    
    # 拆成三个平面后倒序拼接: B,G,R -> R,G,B
    planes = [image[:, :, c] for c in (2, 1, 0)]
    chw = np.ascontiguousarray(np.stack(planes, axis=0), dtype=np.float32)
    return torch.from_numpy(chw)


class InputMolder:
    """批量图像 -> 网络输入"""
    
    def __init__(self, cfg: DictConfig):
        """
        初始化
        
        Args:
            cfg: 配置对象，需包含 image.*、model.num_classes 和 global.gpu_count
        """
        # 使用 getattr 访问 'global' 因为它是 Python 保留字
        global_cfg = getattr(cfg, 'global')
        self.gpu_count = global_cfg.get("gpu_count", 0)
        self.verbose = global_cfg.get("verbose", False)
        
        self.min_dim = cfg.image.min_dim
        self.max_dim = cfg.image.max_dim
        self.padding = cfg.image.padding
        self.mean_pixel = list(cfg.image.mean_pixel)
        self.num_classes = cfg.model.num_classes
    
    @staticmethod
    def _validate(images: Sequence[np.ndarray]) -> None:
        """整批校验，任意一张不合法则整批拒绝"""
        if len(images) == 0:
            raise ValueError("输入图像列表不能为空")
        
        for i, image in enumerate(images):
            if image is None:
                raise ValueError(f"第 {i} 张图像不能为空")
            if image.ndim != 3 or image.shape[2] != 3:
                raise ValueError(
                    f"第 {i} 张图像必须是 (H,W,3) 格式，当前: {image.shape}"
                )
            if image.shape[0] == 0 or image.shape[1] == 0:
                raise ValueError(f"第 {i} 张图像尺寸为 0: {image.shape}")
    
    def mold_inputs(self, images: Sequence[np.ndarray]) -> MoldedInputs:
        """
        批量构建网络输入
        
        Args:
            images: uint8 (H,W,3) BGR 图像列表
        
        Returns:
            MoldedInputs(images, image_metas, windows)
        
        Raises:
            ValueError: 存在不合法图像，或各图像处理后尺寸不一致
        """
        self._validate(images)
        
        molded_images: list[torch.Tensor] = []
        image_metas: list[ImageMeta] = []
        windows: list[Window] = []
        
        for image in images:
            resized = resize_image(
                image,
                min_dim=self.min_dim,
                max_dim=self.max_dim,
                do_padding=self.padding
            )
            molded = mold_image(resized.image, self.mean_pixel)
            
            image_metas.append(ImageMeta(
                original_size=(image.shape[0], image.shape[1]),
                window=resized.window,
                active_class_ids=np.zeros(self.num_classes, dtype=np.int32)
            ))
            windows.append(resized.window)
            molded_images.append(image_to_tensor(molded))
        
        shapes = {tuple(t.shape) for t in molded_images}
        if len(shapes) > 1:
            raise ValueError(f"处理后图像尺寸不一致，无法组成 batch: {sorted(shapes)}")
        
        batch = torch.stack(molded_images)
        
        if self.gpu_count > 0:
            batch = batch.to("cuda")
        
        if self.verbose:
            print(f"[InputMolder] Molded {len(images)} image(s) -> {tuple(batch.shape)} on {batch.device}")
        
        return MoldedInputs(images=batch, image_metas=image_metas, windows=windows)


def mold_inputs(images: Sequence[np.ndarray], cfg: DictConfig) -> MoldedInputs:
    """
    便捷函数：批量构建网络输入
    
    Args:
        images: uint8 (H,W,3) BGR 图像列表
        cfg: 配置对象
    
    Returns:
        MoldedInputs
    """
    return InputMolder(cfg).mold_inputs(images)
