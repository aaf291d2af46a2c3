import unittest

import numpy as np

from scan_kit.nms import NMSConfig, box_iou, nms


class TestNms(unittest.TestCase):
    def test_greedy_order_and_suppression(self) -> None:
        boxes = np.array([[0, 0, 10, 10], [1, 1, 11, 11], [50, 50, 60, 60]], dtype=np.float32)
        scores = np.array([0.9, 0.8, 0.95], dtype=np.float32)
        keep = nms(boxes, scores, NMSConfig(iou_threshold=0.5))
        self.assertEqual(keep.tolist(), [2, 0])

    def test_idempotent_on_own_output(self) -> None:
        rng = np.random.default_rng(0)
        xy = rng.uniform(0, 200, size=(60, 2))
        wh = rng.uniform(5, 60, size=(60, 2))
        boxes = np.concatenate([xy, xy + wh], axis=1)
        scores = rng.uniform(0, 1, size=60)
        cfg = NMSConfig(iou_threshold=0.5)

        keep = nms(boxes, scores, cfg)
        again = nms(boxes[keep], scores[keep], cfg)
        self.assertEqual(again.tolist(), list(range(len(keep))))

    def test_ties_keep_first_seen(self) -> None:
        boxes = np.array([[0, 0, 10, 10], [0, 0, 10, 10], [0, 0, 10, 10]], dtype=np.float32)
        scores = np.array([0.7, 0.7, 0.7], dtype=np.float32)
        self.assertEqual(nms(boxes, scores, NMSConfig(iou_threshold=0.5)).tolist(), [0])

        scores = np.array([0.5, 0.7, 0.7], dtype=np.float32)
        self.assertEqual(nms(boxes, scores, NMSConfig(iou_threshold=0.5)).tolist(), [1])

    def test_zero_area_box_overlaps_nothing(self) -> None:
        boxes = np.array([[0, 0, 10, 10], [5, 5, 5, 5]], dtype=np.float32)
        scores = np.array([0.9, 0.8], dtype=np.float32)
        self.assertEqual(nms(boxes, scores, NMSConfig(iou_threshold=0.0)).tolist(), [0, 1])

    def test_iou_at_threshold_is_kept(self) -> None:
        # IoU exactly 0.5 is not "exceeding" the threshold.
        boxes = np.array([[0, 0, 10, 10], [0, 0, 10, 20]], dtype=np.float64)
        scores = np.array([0.9, 0.8])
        iou = box_iou(boxes[0], boxes[1:])[0]
        self.assertAlmostEqual(iou, 0.5, places=6)
        self.assertLess(iou, 0.5)
        self.assertEqual(nms(boxes, scores, NMSConfig(iou_threshold=0.5)).tolist(), [0, 1])

    def test_max_detections(self) -> None:
        boxes = np.array([[i * 20, 0, i * 20 + 10, 10] for i in range(5)], dtype=np.float32)
        scores = np.linspace(0.9, 0.5, 5)
        keep = nms(boxes, scores, NMSConfig(iou_threshold=0.5, max_detections=2))
        self.assertEqual(keep.tolist(), [0, 1])

    def test_empty(self) -> None:
        keep = nms(np.zeros((0, 4)), np.zeros((0,)))
        self.assertEqual(keep.shape, (0,))

    def test_length_mismatch_rejected(self) -> None:
        with self.assertRaises(ValueError):
            nms(np.zeros((2, 4)), np.zeros((3,)))


if __name__ == "__main__":
    unittest.main()
