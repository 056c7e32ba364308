import pytest

from tests.factories import RecordingLogger, SleepRecorder


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def recorder() -> RecordingLogger:
    return RecordingLogger()


@pytest.fixture
def sleeper() -> SleepRecorder:
    return SleepRecorder()
