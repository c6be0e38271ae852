"""Draw detection overlays and the viewer layout."""
from __future__ import annotations

from typing import Optional, Sequence, Tuple

import cv2
import numpy as np

from ..config.settings import AppSettings
from ..models import Label

PANEL_BACKGROUND = (33, 37, 41)
PANEL_HEADER = "Detected Objects"
PANEL_EMPTY = "No objects detected yet"
BADGE_COLOR = (253, 110, 13)
TEXT_COLOR = (255, 255, 255)
MUTED_TEXT_COLOR = (160, 160, 160)
HEADER_HEIGHT = 36
ROW_HEIGHT = 30


def _color(settings: AppSettings) -> Tuple[int, int, int]:
    blue, green, red = settings.overlay_color_bgr
    return (int(blue), int(green), int(red))


def render_overlay(frame: np.ndarray, labels: Sequence[Label], settings: AppSettings) -> np.ndarray:
    """Return a copy of ``frame`` with the frame outline and one caption per label.

    The relay reports labels without coordinates, so the rectangle always
    outlines the whole frame. An empty label list draws nothing.
    """

    output = frame.copy()
    if not labels:
        return output

    height, width = output.shape[:2]
    color = _color(settings)
    inset = settings.overlay_inset
    cv2.rectangle(
        output,
        (inset, inset),
        (width - inset, height - inset),
        color,
        settings.overlay_thickness,
    )

    x, y = settings.label_origin
    for label in labels:
        cv2.putText(
            output,
            label.caption,
            (x, y),
            cv2.FONT_HERSHEY_SIMPLEX,
            settings.overlay_font_scale,
            color,
            2,
            lineType=cv2.LINE_AA,
        )
        y += settings.label_line_height
    return output


def render_detection_panel(labels: Sequence[Label], height: int, settings: AppSettings) -> np.ndarray:
    """Render the side list of current detections with confidence badges."""

    width = settings.panel_width
    panel = np.zeros((height, width, 3), dtype=np.uint8)
    panel[:] = PANEL_BACKGROUND
    cv2.putText(panel, PANEL_HEADER, (10, 24), cv2.FONT_HERSHEY_SIMPLEX, 0.6, TEXT_COLOR, 1, lineType=cv2.LINE_AA)
    cv2.line(panel, (0, HEADER_HEIGHT), (width, HEADER_HEIGHT), MUTED_TEXT_COLOR, 1)

    if not labels:
        cv2.putText(
            panel,
            PANEL_EMPTY,
            (10, HEADER_HEIGHT + 24),
            cv2.FONT_HERSHEY_SIMPLEX,
            0.5,
            MUTED_TEXT_COLOR,
            1,
            lineType=cv2.LINE_AA,
        )
        return panel

    capacity = max((height - HEADER_HEIGHT) // ROW_HEIGHT, 1)
    visible = list(labels)
    hidden = 0
    if len(visible) > capacity:
        # keep the last row for the overflow marker
        hidden = len(visible) - (capacity - 1)
        visible = visible[: capacity - 1]

    y = HEADER_HEIGHT
    for label in visible:
        baseline = y + 21
        cv2.putText(panel, label.name, (10, baseline), cv2.FONT_HERSHEY_SIMPLEX, 0.5, TEXT_COLOR, 1, lineType=cv2.LINE_AA)
        badge = f"{label.rounded_confidence}%"
        (text_width, _), _ = cv2.getTextSize(badge, cv2.FONT_HERSHEY_SIMPLEX, 0.45, 1)
        left = width - text_width - 22
        cv2.rectangle(panel, (left, y + 6), (width - 8, y + ROW_HEIGHT - 6), BADGE_COLOR, cv2.FILLED)
        cv2.putText(panel, badge, (left + 7, baseline - 1), cv2.FONT_HERSHEY_SIMPLEX, 0.45, TEXT_COLOR, 1, lineType=cv2.LINE_AA)
        y += ROW_HEIGHT

    if hidden:
        cv2.putText(
            panel,
            f"+{hidden} more",
            (10, y + 21),
            cv2.FONT_HERSHEY_SIMPLEX,
            0.5,
            MUTED_TEXT_COLOR,
            1,
            lineType=cv2.LINE_AA,
        )
    return panel


def compose_view(
    canvas: Optional[np.ndarray],
    labels: Sequence[Label],
    status: str,
    settings: AppSettings,
) -> np.ndarray:
    """Place the canvas, its status badge, and the detection panel side by side."""

    if canvas is None:
        view = np.zeros((settings.frame_height, settings.frame_width, 3), dtype=np.uint8)
    else:
        view = canvas.copy()
    height = view.shape[0]

    (text_width, text_height), _ = cv2.getTextSize(status, cv2.FONT_HERSHEY_SIMPLEX, 0.55, 1)
    top = height - text_height - 20
    cv2.rectangle(view, (8, top), (8 + text_width + 16, height - 8), (0, 0, 0), cv2.FILLED)
    cv2.putText(view, status, (16, height - 14), cv2.FONT_HERSHEY_SIMPLEX, 0.55, TEXT_COLOR, 1, lineType=cv2.LINE_AA)

    panel = render_detection_panel(labels, height, settings)
    return np.hstack([view, panel])
