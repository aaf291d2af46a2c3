import unittest

from Live_Scan.ingest import CameraFrameSource
from tests.fakes import make_frame


class _FakeCapture:
    def __init__(self, frames) -> None:
        self.frames = list(frames)
        self.released = False

    def read(self):
        if not self.frames:
            return False, None
        return True, self.frames.pop(0)

    def release(self) -> None:
        self.released = True


class TestCameraFrameSource(unittest.TestCase):
    def test_not_ready_before_first_frame(self) -> None:
        source = CameraFrameSource(_FakeCapture([]))
        self.assertFalse(source.is_ready())
        self.assertIsNone(source.read())
        self.assertEqual((source.width, source.height), (0, 0))

    def test_latest_frame_and_size(self) -> None:
        first, second = make_frame(640, 480), make_frame(320, 240)
        source = CameraFrameSource(_FakeCapture([first, second]))
        source.poll()
        self.assertTrue(source.is_ready())
        self.assertEqual((source.width, source.height), (640, 480))
        source.poll()
        self.assertIs(source.read(), second)
        self.assertEqual((source.width, source.height), (320, 240))

    def test_end_of_stream_keeps_last_frame(self) -> None:
        frame = make_frame(64, 48)
        cap = _FakeCapture([frame])
        source = CameraFrameSource(cap)
        source.poll()
        self.assertIsNone(source.poll())
        self.assertTrue(source.ended)
        self.assertIs(source.read(), frame)
        source.release()
        self.assertTrue(cap.released)


if __name__ == "__main__":
    unittest.main()
