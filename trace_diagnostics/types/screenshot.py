"""Screenshot objects carrying base64-encoded JPEG frames."""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass

from trace_diagnostics.model import ObjectInstance, ObjectSnapshot

SCREENSHOT_TYPE = "Screenshot"


@dataclass(eq=False)
class ScreenshotSnapshot(ObjectSnapshot):

    @property
    def encoded_image(self) -> str | None:
        data = self.args.get("snapshot")
        return data if isinstance(data, str) and data else None

    def image_bytes(self) -> bytes | None:
        encoded = self.encoded_image
        if encoded is None:
            return None
        try:
            return base64.b64decode(encoded, validate=False)
        except (binascii.Error, ValueError):
            return None


def register_screenshot(registry) -> None:
    registry.register(
        SCREENSHOT_TYPE,
        snapshot_factory=ScreenshotSnapshot,
        instance_factory=ObjectInstance,
        view_metadata={"name": "screenshot", "pluralName": "screenshots"}
    )
