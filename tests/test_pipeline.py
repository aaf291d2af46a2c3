import logging
import unittest

import numpy as np

from scan_kit.errors import InferenceFailure, SessionUnavailable, UnsupportedBatchSize
from scan_kit.runtime import DetectionPipeline, LazyEngine
from scan_kit.session import ScanSession
from scan_kit.smoothing import SmoothingConfig
from scan_kit.types import RawTensor
from tests.fakes import FRAME_H, FRAME_W, FakeEngine, channels_first_output, make_frame


class TestDetectionPipeline(unittest.IsolatedAsyncioTestCase):
    async def test_run_frame_end_to_end(self) -> None:
        engine = FakeEngine()
        pipeline = DetectionPipeline(engine)
        result = await pipeline.run_frame(make_frame())

        self.assertTrue(result.ok)
        self.assertEqual(result.frame_size, (FRAME_W, FRAME_H))
        self.assertEqual(len(result.detections), 1)
        det = result.detections[0]
        self.assertEqual(det.as_xyxy(), (540, 310, 740, 410))
        self.assertEqual(det.class_id, 1)

        feeds = engine.calls[0]
        self.assertEqual(list(feeds), ["images"])
        self.assertEqual(feeds["images"].shape, (1, 3, 640, 640))
        self.assertEqual(feeds["images"].dtype, np.float32)

        self.assertEqual(len(pipeline.session.history), 1)
        self.assertEqual(pipeline.session.stats.frames, 1)
        self.assertEqual(pipeline.session.stats.failures, 0)

    async def test_second_frame_is_smoothed(self) -> None:
        engine = FakeEngine()
        pipeline = DetectionPipeline(engine, smoothing_cfg=SmoothingConfig(alpha=0.5))
        await pipeline.run_frame(make_frame())

        # Shift the box 4 canvas px (8 frame px) right.
        engine.output = channels_first_output([[324, 320, 100, 50, 0.1, 0.9]])
        result = await pipeline.run_frame(make_frame())
        self.assertEqual(result.detections[0].as_xyxy(), (544, 310, 744, 410))
        self.assertEqual(len(pipeline.session.history), 2)

    async def test_inference_error_is_reported_not_raised(self) -> None:
        pipeline = DetectionPipeline(FakeEngine(exc=RuntimeError("wasm trap")))
        with self.assertLogs("scan_kit.runtime", level="WARNING"):
            result = await pipeline.run_frame(make_frame())

        self.assertFalse(result.ok)
        self.assertIsInstance(result.error, InferenceFailure)
        self.assertEqual(result.stage, "inference")
        self.assertEqual(result.detections, [])
        self.assertEqual(pipeline.session.stats.failures, 1)
        self.assertEqual(pipeline.session.stats.failures_by_kind["InferenceFailure"], 1)
        self.assertEqual(len(pipeline.session.history), 0)

    async def test_batched_output_skips_frame(self) -> None:
        raw = RawTensor.from_array(np.zeros((2, 6, 16), dtype=np.float32))
        pipeline = DetectionPipeline(FakeEngine(output=raw))
        with self.assertLogs("scan_kit.runtime", level="WARNING"):
            result = await pipeline.run_frame(make_frame())
        self.assertIsInstance(result.error, UnsupportedBatchSize)
        self.assertEqual(result.stage, "postprocess")

    async def test_missing_outputs_skips_frame(self) -> None:
        pipeline = DetectionPipeline(FakeEngine(output=None))
        with self.assertLogs("scan_kit.runtime", level="WARNING"):
            result = await pipeline.run_frame(make_frame())
        self.assertIsInstance(result.error, UnsupportedBatchSize)

    async def test_bad_frame_skips_frame(self) -> None:
        pipeline = DetectionPipeline(FakeEngine())
        with self.assertLogs("scan_kit.runtime", level="WARNING"):
            result = await pipeline.run_frame(np.zeros((10, 10), dtype=np.uint8))
        self.assertEqual(result.stage, "preprocess")
        self.assertIsInstance(result.error, ValueError)

    async def test_frame_size_change_drops_history(self) -> None:
        engine = FakeEngine(output=channels_first_output([[335, 335, 10, 10, 0.1, 0.9]]))
        pipeline = DetectionPipeline(engine)
        result = await pipeline.run_frame(make_frame(1280, 1280))
        self.assertEqual(result.detections[0].as_xyxy(), (660, 660, 680, 680))

        # Close enough in pixels to associate if the old history were kept.
        engine.output = channels_first_output([[635, 635, 30, 30, 0.1, 0.9]])
        result = await pipeline.run_frame(make_frame(640, 640))
        self.assertTrue(result.ok)
        self.assertEqual(result.detections[0].as_xyxy(), (620, 620, 639, 639))
        self.assertEqual(len(pipeline.session.history), 1)

    async def test_extreme_aspect_ratio_frame(self) -> None:
        pipeline = DetectionPipeline(FakeEngine())
        result = await pipeline.run_frame(make_frame(1, 2000))
        self.assertTrue(result.ok)
        self.assertEqual(result.frame_size, (1, 2000))
        self.assertEqual(result.params.resized_size, (1, 640))
        for det in result.detections:
            self.assertTrue(0 <= det.x1 <= det.x2 <= 0)
            self.assertTrue(0 <= det.y1 <= det.y2 <= 1999)

    async def test_unexpected_postprocess_error_is_recorded(self) -> None:
        pipeline = DetectionPipeline(FakeEngine())

        def broken(*args):
            raise KeyError("anchors")

        pipeline.post.process = broken
        with self.assertLogs("scan_kit.runtime", level="WARNING"):
            result = await pipeline.run_frame(make_frame())
        self.assertIsInstance(result.error, KeyError)
        self.assertEqual(result.stage, "postprocess")
        self.assertEqual(pipeline.session.stats.failures_by_kind["KeyError"], 1)

    async def test_stale_generation_leaves_history_alone(self) -> None:
        session = ScanSession()
        session.reset(generation=5)
        pipeline = DetectionPipeline(FakeEngine(), session)

        result = await pipeline.run_frame(make_frame(), generation=4)
        self.assertTrue(result.stale)
        self.assertEqual(len(session.history), 0)
        self.assertEqual(session.stats.frames, 0)
        self.assertEqual(session.stats.stale, 1)

        result = await pipeline.run_frame(make_frame(), generation=5)
        self.assertFalse(result.stale)
        self.assertEqual(len(session.history), 1)

    async def test_loop_survives_failures(self) -> None:
        engine = FakeEngine(exc=RuntimeError("flaky"))
        pipeline = DetectionPipeline(engine)
        with self.assertLogs("scan_kit.runtime", level="WARNING"):
            for _ in range(3):
                await pipeline.run_frame(make_frame())
        engine.exc = None
        result = await pipeline.run_frame(make_frame())
        self.assertTrue(result.ok)
        self.assertEqual(pipeline.session.stats.frames, 4)
        self.assertEqual(pipeline.session.stats.failures, 3)


class TestLazyEngine(unittest.IsolatedAsyncioTestCase):
    async def test_unloaded_engine_skips_frames(self) -> None:
        engine = LazyEngine(FakeEngine)
        pipeline = DetectionPipeline(engine)
        with self.assertLogs("scan_kit.runtime", level="DEBUG") as logs:
            result = await pipeline.run_frame(make_frame())
        self.assertEqual([r.levelno for r in logs.records], [logging.DEBUG])
        self.assertIsInstance(result.error, SessionUnavailable)
        self.assertEqual(result.stage, "inference")

        await engine.load()
        self.assertTrue(engine.loaded)
        result = await pipeline.run_frame(make_frame())
        self.assertTrue(result.ok)
        self.assertEqual(len(result.detections), 1)

    async def test_load_failure_reported_once(self) -> None:
        attempts = []

        def factory() -> FakeEngine:
            attempts.append(1)
            raise FileNotFoundError("Models/best.onnx")

        engine = LazyEngine(factory)
        with self.assertLogs("scan_kit.runtime", level="ERROR") as logs:
            self.assertIsNone(await engine.load())
        self.assertEqual(len(logs.records), 1)
        self.assertIsInstance(engine.load_error, FileNotFoundError)

        self.assertIsNone(await engine.load())
        self.assertEqual(len(attempts), 1)



class TestLoadEngine(unittest.TestCase):
    def test_unknown_extension_rejected(self) -> None:
        from scan_kit.runtime import load_engine

        with self.assertRaises(ValueError):
            load_engine("/tmp/model.bin")

    def test_unknown_backend_rejected(self) -> None:
        from scan_kit.runtime import load_engine

        with self.assertRaises(ValueError):
            load_engine("/tmp/model.onnx", backend="tflite")

    def test_resolve_path_relative_to_root(self) -> None:
        from pathlib import Path

        from scan_kit.runtime import resolve_path

        self.assertEqual(resolve_path("Models/best.onnx", root="/opt/app"), Path("/opt/app/Models/best.onnx").resolve())
        self.assertEqual(resolve_path("/abs/best.onnx"), Path("/abs/best.onnx"))


if __name__ == "__main__":
    unittest.main()
