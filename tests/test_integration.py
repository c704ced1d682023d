"""
集成测试 - 测试完整 Pipeline 流程
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

import numpy as np
import pytest
import torch

from src.context import DetectionResult
from src.pipeline import DetectionPipeline, load_pipeline


OVERRIDES = {
    "image": {"min_dim": 64, "max_dim": 128, "padding": True},
    "model": {"num_classes": 4}
}


class WindowModel:
    """假模型：每张图像输出一个覆盖整个 window 的检测，其余行补零"""

    def __init__(self, capacity: int = 5, with_counts: bool = False):
        self.capacity = capacity
        self.with_counts = with_counts
        self.calls = []

    def __call__(self, images: torch.Tensor, image_metas):
        self.calls.append((tuple(images.shape), len(image_metas)))

        batch = len(image_metas)
        detections = torch.zeros((batch, self.capacity, 6))
        masks = torch.zeros((batch, self.capacity, 28, 28, 4))
        for i, meta in enumerate(image_metas):
            detections[i, 0] = torch.tensor([*meta.window.as_tuple(), 2, 0.95])
            masks[i, 0, :, :, 2] = 1.0

        if self.with_counts:
            return detections, masks, [1] * batch
        return detections, masks


@pytest.fixture
def images():
    """两张不同尺寸的测试图像"""
    return [
        np.random.randint(0, 256, (100, 50, 3), dtype=np.uint8),
        np.random.randint(0, 256, (60, 120, 3), dtype=np.uint8),
    ]


@pytest.fixture
def pipeline():
    """创建 Pipeline"""
    return load_pipeline(overrides=OVERRIDES)


class TestPipelineIntegration:
    """Pipeline 集成测试"""

    def test_load_pipeline(self):
        """测试加载默认配置"""
        pipe = load_pipeline()
        assert isinstance(pipe, DetectionPipeline)
        assert pipe.cfg.image.min_dim == 800
        assert pipe.cfg.image.max_dim == 1024
        assert pipe.cfg.model.num_classes == 81

    def test_overrides(self, pipeline):
        assert pipeline.cfg.image.max_dim == 128
        # 未覆盖的字段保留默认值
        assert pipeline.cfg.detection.mask_threshold == 0.5

    def test_detect(self, pipeline, images):
        model = WindowModel()
        results = pipeline.detect(images, model)

        assert model.calls == [((2, 3, 128, 128), 2)]
        assert len(results) == 2
        for result, image in zip(results, images):
            h, w = image.shape[:2]
            assert isinstance(result, DetectionResult)
            assert len(result) == 1
            assert result.boxes.tolist() == [[0, 0, h, w]]
            assert result.class_ids.tolist() == [2]
            assert result.masks[0].shape == (h, w)
            assert np.count_nonzero(result.masks[0]) == h * w

    def test_detect_with_counts(self, pipeline, images):
        results = pipeline.detect(images, WindowModel(with_counts=True))
        assert [len(r) for r in results] == [1, 1]

    def test_model_count_out_of_range(self, pipeline, images):
        """模型给出的有效检测数超过容量时报错"""
        def counting_model(batch, metas):
            detections, masks = WindowModel()(batch, metas)
            return detections, masks, [9] * len(metas)

        with pytest.raises(ValueError, match="超出范围"):
            pipeline.detect(images, counting_model)

    def test_batch_size_mismatch(self, pipeline, images):
        def bad_model(batch, metas):
            return torch.zeros((1, 5, 6)), torch.zeros((1, 5, 28, 28, 4))

        with pytest.raises(RuntimeError, match="不一致"):
            pipeline.detect(images, bad_model)

    def test_invalid_image_rejects_batch(self, pipeline, images):
        model = WindowModel()
        images.append(np.zeros((10, 10), dtype=np.uint8))

        with pytest.raises(ValueError):
            pipeline.detect(images, model)
        assert model.calls == []

    def test_lazy_modules(self, pipeline):
        assert pipeline._molder is None
        assert pipeline._unmolder is None
        assert pipeline.molder is pipeline.molder
        assert pipeline.unmolder is pipeline.unmolder


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
