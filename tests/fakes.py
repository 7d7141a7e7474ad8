import asyncio
import io
from datetime import datetime, timedelta, timezone

import numpy as np
from PIL import Image

from eyeportal.application.ports.capability_source import Identity, Session


def png_bytes(width=8, height=8, color=(200, 30, 30)):
    buf = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buf, format="PNG")
    return buf.getvalue()


def make_session(user_id, email=None):
    return Session(
        access_token=f"token-{user_id}",
        expires_at=datetime.now(timezone.utc) + timedelta(hours=1),
        user=Identity(id=user_id, email=email or f"{user_id}@example.com"),
    )


async def settle(turns=20):
    for _ in range(turns):
        await asyncio.sleep(0)


class FakeNotifier:
    def __init__(self):
        self.messages = []

    def success(self, message):
        self.messages.append(("success", message))

    def info(self, message):
        self.messages.append(("info", message))

    def error(self, message):
        self.messages.append(("error", message))

    def errors(self):
        return [m for level, m in self.messages if level == "error"]


class FakeCapabilitySource:
    """Change notifications are pushed by the test through ``emit``."""

    def __init__(self, snapshot=None):
        self.callbacks = []
        self.snapshot = snapshot
        self.snapshot_calls = 0

    def subscribe(self, on_change):
        self.callbacks.append(on_change)

        def unsubscribe():
            if on_change in self.callbacks:
                self.callbacks.remove(on_change)

        return unsubscribe

    def emit(self, event, session):
        for cb in list(self.callbacks):
            cb(event, session)

    async def get_current_session(self):
        self.snapshot_calls += 1
        if isinstance(self.snapshot, asyncio.Future):
            return await self.snapshot
        if isinstance(self.snapshot, Exception):
            raise self.snapshot
        return self.snapshot


class FakeProfiles:
    """Profile lookups that can be held open per user with a future."""

    def __init__(self, profiles=None):
        self.profiles = dict(profiles or {})
        self.gates = {}
        self.calls = []

    async def get_profile(self, user_id):
        self.calls.append(user_id)
        gate = self.gates.get(user_id)
        if gate is not None:
            return await gate
        value = self.profiles.get(user_id)
        if isinstance(value, Exception):
            raise value
        return value


class FakeStream:
    def __init__(self, width=64, height=48):
        self._width = width
        self._height = height
        self.stopped = 0
        self.read_error = None

    @property
    def width(self):
        return self._width

    @property
    def height(self):
        return self._height

    async def read_frame(self):
        if self.read_error:
            raise self.read_error
        frame = np.zeros((self._height, self._width, 3), dtype=np.uint8)
        frame[:, :, 1] = 120
        return frame

    def stop(self):
        self.stopped += 1


class FakeDeviceAPI:
    def __init__(self, stream=None, error=None, gate=None):
        self.stream = stream or FakeStream()
        self.error = error
        self.gate = gate
        self.requests = 0

    async def request_stream(self, constraints):
        self.requests += 1
        if self.gate is not None:
            await self.gate
        if self.error:
            raise self.error
        return self.stream


class FakePreview:
    def __init__(self):
        self.stream = None
        self.detached = 0

    def attach(self, stream):
        self.stream = stream

    def detach(self):
        self.stream = None
        self.detached += 1


class FakeAnalyzer:
    def __init__(self, result=None, error=None, gate=None):
        self.result = result
        self.error = error
        self.gate = gate
        self.calls = 0

    async def analyze(self, capture):
        self.calls += 1
        if self.gate is not None:
            await self.gate
        if self.error:
            raise self.error
        return self.result


class FakeStorage:
    def __init__(self, error=None):
        self.saved = []
        self.error = error

    def save_bytes(self, subdir, filename, data):
        if self.error:
            raise self.error
        path = f"uploads/{subdir}/{filename}"
        self.saved.append((path, data))
        return path


class FakeAudit:
    def __init__(self):
        self.entries = []

    def log(self, action, email, user_id=None, success=True, details=None):
        self.entries.append((action, email, user_id, success))
