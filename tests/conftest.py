import os
import threading
import pytest
import yaml
from pathlib import Path
from typing import List, Set
from unittest.mock import MagicMock
from msync.config.models import AppConfig
from msync.domain.errors import ProcessError, TagReadError
from msync.domain.models import TagFields
from msync.infrastructure.event_bus import EventBus
from msync.infrastructure.ffmpeg import FFmpegAdapter
from msync.infrastructure.file_scanner import FileScanner
from msync.pipeline.indexer import Indexer
from msync.pipeline.runner import JobRunner
from msync.pipeline.transcoder import TranscodePipeline

# ============================================================================
# Configuration Fixtures
# ============================================================================

@pytest.fixture
def sample_config():
    """Returns a sample AppConfig object for testing."""
    return AppConfig(
        general={
            "threads": 4,
            "progress_every": 1,
            "debug": False,
        },
    )

@pytest.fixture
def config_yaml_path(tmp_path):
    """Creates a temporary YAML config file."""
    conf_dir = tmp_path / "conf"
    conf_dir.mkdir()
    conf_file = conf_dir / "msync.yaml"

    content = {
        'general': {
            'threads': 2,
            'progress_every': 5,
            'debug': False,
        },
        'scan': {
            'audio_extensions': ['flac', 'MP3'],
            'index_filename': 'index.json',
        },
        'transcode': {
            'cover_filename': 'folder.jpg',
            'formats': {
                'opus': {
                    'extension': 'opus',
                    'command': ['opusenc', '--bitrate', '96', '{source}', '{output}'],
                },
            },
        },
    }

    with open(conf_file, 'w') as f:
        yaml.dump(content, f)

    return conf_file

# ============================================================================
# EventBus Fixtures
# ============================================================================

@pytest.fixture
def event_bus():
    """Returns a fresh EventBus instance."""
    return EventBus()

@pytest.fixture
def recorded_events(event_bus):
    """Collects every published event of the types subscribed through the returned helper."""
    received: List = []

    def record(*event_types):
        for event_type in event_types:
            event_bus.subscribe(event_type, received.append)
        return received

    return record

# ============================================================================
# File System Fixtures
# ============================================================================

@pytest.fixture
def source_root(tmp_path):
    """Creates a source library root."""
    root = tmp_path / "library"
    root.mkdir()
    return root

@pytest.fixture
def dest_root(tmp_path):
    """Destination root path (not created)."""
    return tmp_path / "mirror"

@pytest.fixture
def set_mtime():
    """Sets a file's mtime from unix seconds at millisecond precision."""
    def _set(path: Path, seconds: float):
        ns = int(round(seconds * 1000)) * 1_000_000
        os.utime(path, ns=(ns, ns))
        return ns
    return _set

@pytest.fixture
def make_file(set_mtime):
    """Writes a file (creating parents) and optionally stamps its mtime."""
    def _make(path: Path, content: bytes = b"fLaC dummy audio", mtime: float = None) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
        if mtime is not None:
            set_mtime(path, mtime)
        return path
    return _make

# ============================================================================
# Fake collaborators
# ============================================================================

class FakeTagReader:
    """TagReader stand-in: tags derive from the file name, art is on by default."""

    def __init__(self):
        self._lock = threading.Lock()
        self.read_calls: List[str] = []
        self.cover_probes: List[str] = []
        self.failing: Set[str] = set()
        self.without_art: Set[str] = set()

    def read(self, path: Path) -> TagFields:
        with self._lock:
            self.read_calls.append(path.name)
        if path.name in self.failing:
            raise TagReadError(path, "broken header")
        return TagFields(
            title=path.stem,
            artist="Artist",
            album=path.parent.name,
            track_number=1,
            track_total=10,
            duration=180.6,
            bitrate=900,
            has_cover=path.name not in self.without_art,
        )

    def has_cover(self, path: Path) -> bool:
        with self._lock:
            self.cover_probes.append(path.name)
        return path.name not in self.without_art


class FakeFFmpeg(FFmpegAdapter):
    """Writes a small payload instead of spawning ffmpeg; failing sources leave a partial temp file."""

    def __init__(self, config):
        super().__init__(config.transcode)
        self._lock = threading.Lock()
        self.encoded: List[str] = []
        self.covers: List[str] = []
        self.failing: Set[str] = set()

    def encode(self, source: Path, output: Path, format_name: str):
        self.profile(format_name)
        if source.name in self.failing:
            output.write_bytes(b"partial")
            raise ProcessError(["ffmpeg", "-i", str(source)], 1, "Invalid data found when processing input")
        output.write_bytes(f"{format_name}:{source.name}".encode())
        with self._lock:
            self.encoded.append(source.name)

    def extract_cover(self, source: Path, output: Path):
        output.write_bytes(b"\xff\xd8\xff\xe0 jpeg " + source.name.encode())
        with self._lock:
            self.covers.append(source.name)


@pytest.fixture
def tag_reader():
    return FakeTagReader()

@pytest.fixture
def fake_ffmpeg(sample_config):
    return FakeFFmpeg(sample_config)

@pytest.fixture
def fake_exif():
    return MagicMock()

@pytest.fixture
def job_runner(event_bus, sample_config):
    return JobRunner(event_bus, max_workers=4, progress_every=sample_config.general.progress_every)

@pytest.fixture
def indexer(sample_config, event_bus, tag_reader, job_runner):
    return Indexer(
        config=sample_config,
        event_bus=event_bus,
        file_scanner=FileScanner(sample_config.scan.audio_extensions),
        tag_reader=tag_reader,
        runner=job_runner,
    )

@pytest.fixture
def transcoder(sample_config, event_bus, tag_reader, fake_ffmpeg, fake_exif, job_runner):
    return TranscodePipeline(
        config=sample_config,
        event_bus=event_bus,
        file_scanner=FileScanner(sample_config.scan.lossless_extensions),
        tag_reader=tag_reader,
        ffmpeg_adapter=fake_ffmpeg,
        exif_adapter=fake_exif,
        runner=job_runner,
    )

# ============================================================================
# Markers
# ============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )
