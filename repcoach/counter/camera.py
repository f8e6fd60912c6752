from __future__ import annotations
import logging
import time
from typing import Iterator, Optional, Sequence

import cv2

from repcoach.counter.pose_core import KEYPOINT_NAMES, Frame, Keypoint

logger = logging.getLogger(__name__)

# MediaPipe Pose landmark index for each joint of the 17-point layout
MEDIAPIPE_TO_COCO = (0, 2, 5, 7, 8, 11, 12, 13, 14, 15, 16, 23, 24, 25, 26, 27, 28)


def landmarks_to_frame(landmarks: Sequence, width: int, height: int, ts: Optional[float] = None) -> Frame:
    """Map normalized MediaPipe landmarks to a pixel-space 17-point frame (visibility as score)."""
    kps = tuple(
        Keypoint(landmarks[i].x * width, landmarks[i].y * height, float(landmarks[i].visibility))
        for i in MEDIAPIPE_TO_COCO
    )
    return Frame(kps, float(width), float(height), ts)


class CameraFrameSource:
    """
    Webcam + MediaPipe Pose as an upstream keypoint producer. Iterating yields
    one Frame per captured image, or None when no person was found.
    """

    layout = KEYPOINT_NAMES

    def __init__(self, device_index: int = 0, min_confidence: float = 0.5):
        self.device_index = device_index
        self.min_confidence = min_confidence
        self.cap = None
        self.pose = None

    def open(self):
        import mediapipe as mp  # lazy import, optional extra

        self.cap = cv2.VideoCapture(self.device_index)
        if not self.cap.isOpened():
            raise RuntimeError("Webcam not available")
        self.pose = mp.solutions.pose.Pose(
            min_detection_confidence=self.min_confidence,
            min_tracking_confidence=self.min_confidence,
        )

    def __iter__(self) -> Iterator[Optional[Frame]]:
        if self.cap is None:
            self.open()
        while self.cap is not None:
            ok, image = self.cap.read()
            if not ok:
                time.sleep(0.01)
                yield None
                continue
            h, w = image.shape[:2]
            res = self.pose.process(cv2.cvtColor(image, cv2.COLOR_BGR2RGB))
            if not res.pose_landmarks:
                yield None
                continue
            yield landmarks_to_frame(res.pose_landmarks.landmark, w, h, time.time())

    def close(self):
        if self.cap is not None:
            self.cap.release()
            self.cap = None
        if self.pose is not None:
            self.pose.close()
            self.pose = None
        logger.info("camera %s released", self.device_index)
