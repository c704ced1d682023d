"""
DetectionPipeline - 主处理流水线

mold -> 模型（外部） -> unmold 的入口。
"""

from pathlib import Path
from typing import Any, Callable, Sequence

import numpy as np
from omegaconf import OmegaConf, DictConfig

from .context import DetectionResult, MoldedInputs


class DetectionPipeline:
    """Mask R-CNN 输入构建与输出还原 Pipeline"""
    
    def __init__(
        self,
        config_path: str | Path | None = None,
        overrides: dict[str, Any] | None = None
    ):
        """
        初始化 Pipeline
        
        Args:
            config_path: 配置文件路径，默认使用 config/default.yaml
            overrides: 覆盖配置，如 {"image": {"padding": False}}
        """
        # 加载配置
        if config_path is None:
            config_path = Path(__file__).parent.parent / "config" / "default.yaml"
        cfg = OmegaConf.load(config_path)
        if overrides:
            cfg = OmegaConf.merge(cfg, OmegaConf.create(overrides))
        self.cfg: DictConfig = cfg
        
        # 初始化各模块（延迟加载）
        self._molder = None
        self._unmolder = None
    
    # ==================== 模块懒加载 ====================
    
    @property
    def molder(self):
        """输入构建模块（懒加载）"""
        if self._molder is None:
            from .preprocess import InputMolder
            self._molder = InputMolder(self.cfg)
        return self._molder
    
    @property
    def unmolder(self):
        """输出还原模块（懒加载）"""
        if self._unmolder is None:
            from .postprocess import DetectionUnmolder
            self._unmolder = DetectionUnmolder(self.cfg)
        return self._unmolder
    
    # ==================== 主处理流程 ====================
    
    def mold(self, images: Sequence[np.ndarray]) -> MoldedInputs:
        """批量构建网络输入"""
        return self.molder.mold_inputs(images)
    
    def unmold(self, molded: MoldedInputs, outputs) -> list[DetectionResult]:
        """
        还原一个 batch 的网络输出
        
        Args:
            molded: mold 的结果
            outputs: (detections, mrcnn_mask) 或 (detections, mrcnn_mask, counts)
                detections: (B,K,6)
                mrcnn_mask: (B,K,mh,mw,num_classes)
                counts: 每张图像的有效检测数，可选
        
        Returns:
            每张图像一个 DetectionResult
        
        Raises:
            RuntimeError: 输出 batch 大小与输入不一致
        """
        detections, mrcnn_mask, *rest = outputs
        counts = rest[0] if rest else None
        
        if len(detections) != len(molded) or len(mrcnn_mask) != len(molded):
            raise RuntimeError(
                f"模型输出 batch 大小 ({len(detections)}, {len(mrcnn_mask)}) "
                f"与输入 ({len(molded)}) 不一致"
            )
        
        results = []
        for i, meta in enumerate(molded.image_metas):
            results.append(self.unmolder.unmold(
                detections[i],
                mrcnn_mask[i],
                meta.original_size,
                meta.window,
                num_detections=None if counts is None else int(counts[i])
            ))
        return results
    
    def detect(
        self,
        images: Sequence[np.ndarray],
        model: Callable
    ) -> list[DetectionResult]:
        """
        处理一个 batch
        
        Args:
            images: uint8 (H,W,3) BGR 图像列表
            model: 网络，model(batch_images, image_metas) 返回
                (detections, mrcnn_mask[, counts])
        
        Returns:
            每张图像一个 DetectionResult，坐标在原图空间
        """
        # A. 构建输入
        molded = self.mold(images)
        
        # B. 推理（外部）
        outputs = model(molded.images, molded.image_metas)
        
        # C. 还原
        results = self.unmold(molded, outputs)
        
        if self.cfg["global"].get("verbose", False):
            total = sum(len(r) for r in results)
            print(f"[Pipeline] {len(images)} image(s), {total} detection(s)")
        
        return results


def load_pipeline(
    config_path: str | Path | None = None,
    overrides: dict[str, Any] | None = None
) -> DetectionPipeline:
    """
    便捷函数：加载 Pipeline
    
    Args:
        config_path: 配置文件路径
        overrides: 覆盖配置
    
    Returns:
        DetectionPipeline 实例
    """
    return DetectionPipeline(config_path, overrides)
